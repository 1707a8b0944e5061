"""Reference classification, resolution, scheduling and patching."""

from .classifier import ReferenceClassifier, parse_action_reference, parse_workflow
from .mirror_cache import MirrorCache
from .patcher import PatchApplier, PatchOperation, PatchOutcome
from .resolver import VersionResolver
from .scheduler import ResolutionScheduler

__all__ = [
	"ReferenceClassifier",
	"parse_action_reference",
	"parse_workflow",
	"MirrorCache",
	"PatchApplier",
	"PatchOperation",
	"PatchOutcome",
	"VersionResolver",
	"ResolutionScheduler",
]
