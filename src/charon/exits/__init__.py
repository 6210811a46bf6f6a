"""Exit decisions - proof resolution, tradability, conflict guard and the exit ladder."""

from charon.exits.config import EngineConfig, ExitConfig, LadderConfig, RedemptionConfig
from charon.exits.conflict import ConflictingPosition, get_conflicting_position, would_conflict
from charon.exits.ladder import ExitLadder
from charon.exits.presets import PRESET_NAMES, config_for_preset
from charon.exits.proof import ProofResolution, ProofResolver, attach_proof, resolve_proof
from charon.exits.tradability import check_tradability, is_actionable

__all__ = [
    # Config
    "ExitConfig",
    "LadderConfig",
    "RedemptionConfig",
    "EngineConfig",
    "config_for_preset",
    "PRESET_NAMES",
    # Proof
    "ProofResolution",
    "ProofResolver",
    "resolve_proof",
    "attach_proof",
    # Classifiers
    "check_tradability",
    "is_actionable",
    "ConflictingPosition",
    "get_conflicting_position",
    "would_conflict",
    # Ladder
    "ExitLadder",
]
