from .runner import InferenceFactory, InferenceRunner, load_runner, select_providers

__all__ = ["InferenceFactory", "InferenceRunner", "load_runner", "select_providers"]
