from .base import PythonStep, Step
from .script import ScriptStep, discover_script_steps

__all__ = [
    "Step",
    "PythonStep",
    "ScriptStep",
    "discover_script_steps",
]
