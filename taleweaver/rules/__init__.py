"""Optional rule logic (checks, narration guidance) behind a fixed capability contract.

The engine only talks to `RuleDispatcher`; any game system (dice rules, combat
modes, ...) lives entirely inside a provider.
"""

from taleweaver.rules.base import (
    CharacterOptions,
    CheckDefinition,
    CheckResolutionResult,
    ClassDefinition,
    RaceDefinition,
    RuleProvider,
)
from taleweaver.rules.default import DefaultRuleProvider
from taleweaver.rules.dispatcher import RuleDispatcher, select_provider
from taleweaver.rules.registry import ProviderRegistration, ProviderRegistry

__all__ = [
    "CharacterOptions",
    "CheckDefinition",
    "CheckResolutionResult",
    "ClassDefinition",
    "DefaultRuleProvider",
    "ProviderRegistration",
    "ProviderRegistry",
    "RaceDefinition",
    "RuleDispatcher",
    "RuleProvider",
    "select_provider",
]
