from .store import EYE_EXPRESSION_INDEX, FACE_EXPRESSIONS, CalibrationEntry, CalibrationStore

__all__ = ["CalibrationEntry", "CalibrationStore", "EYE_EXPRESSION_INDEX", "FACE_EXPRESSIONS"]
