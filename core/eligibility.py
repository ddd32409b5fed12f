"""
core/eligibility.py — Eligibility Evaluator
=============================================
The disclosure gate for event registration. Decides which boolean claims a
subject may disclose for an event, and whether the subject may enter at all.

Rules:
    requireAge && minAge > 0 → stored age must be ≥ minAge; discloses ageAbove:<minAge>
    requireIdentity          → discloses identityVerified
    requireCountry           → discloses countryResident:<country>
    no age requirement       → age check passes

Claims are always emitted in the order age, identity, country.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.errors import AgeRestricted

logger = logging.getLogger("racepass.eligibility")


@dataclass(frozen=True)
class EventRequirements:
    min_age: int = 0
    require_identity: bool = True
    require_age: bool = True
    require_country: bool = False

    @property
    def age_gated(self) -> bool:
        return self.require_age and self.min_age > 0

    def to_dict(self) -> dict:
        return {
            "minAge": self.min_age,
            "requireIdentity": self.require_identity,
            "requireAge": self.require_age,
            "requireCountry": self.require_country,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "EventRequirements":
        data = data or {}
        return cls(
            min_age=int(data.get("minAge", 0) or 0),
            require_identity=data.get("requireIdentity", True) is not False,
            require_age=data.get("requireAge", True) is not False,
            require_country=bool(data.get("requireCountry", False)),
        )


@dataclass
class EligibilityDecision:
    eligible: bool
    claims: List[str] = field(default_factory=list)
    disclosures: Dict[str, bool] = field(default_factory=dict)
    reason: Optional[str] = None


def evaluate(age: int, country: str, requirements: EventRequirements) -> EligibilityDecision:
    """Pure evaluation: no signing, no state."""
    claims = []
    disclosures = {
        "ageAboveMin": True,
        "identityVerified": False,
        "countryResident": False,
    }

    if requirements.age_gated:
        if age < requirements.min_age:
            disclosures["ageAboveMin"] = False
            return EligibilityDecision(
                eligible=False,
                disclosures=disclosures,
                reason="age_restricted",
            )
        claims.append(f"ageAbove:{requirements.min_age}")

    if requirements.require_identity:
        claims.append("identityVerified")
        disclosures["identityVerified"] = True

    if requirements.require_country:
        claims.append(f"countryResident:{country}")
        disclosures["countryResident"] = True

    return EligibilityDecision(eligible=True, claims=claims, disclosures=disclosures)


def preview(age: int, requirements: EventRequirements) -> dict:
    """What the subject could prove for an event, without signing anything."""
    return {
        "ageAboveMin": {
            "required": requirements.age_gated,
            "canProve": age >= requirements.min_age if requirements.min_age > 0 else True,
        },
        "identityVerified": {"required": requirements.require_identity, "canProve": True},
        "countryResident": {"required": requirements.require_country, "canProve": True},
    }


def require_eligibility(age: int, country: str, requirements: EventRequirements) -> EligibilityDecision:
    """
    Same as evaluate() but raises AgeRestricted instead of returning an
    ineligible decision.
    """
    decision = evaluate(age, country, requirements)
    if not decision.eligible:
        logger.info(f"Eligibility DENIED: requires {requirements.min_age}+")
        raise AgeRestricted(f"You must be {requirements.min_age}+ for this event.")
    return decision
