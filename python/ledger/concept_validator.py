"""
Concept governance validation.

Tier 1/2 FINANCE concepts must reference a LAW-level standard pack.
Concept-management code calls validate_concept() before writing a concept.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from database.models import AuthorityLevel, ConceptDomain, ConceptType, PackStatus
from database.repositories import StandardPackRepository

logger = logging.getLogger(__name__)

GOVERNED_TIERS = (1, 2)


@dataclass
class ConceptValidationResult:
    """Result of a concept governance check"""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def _enum_value(value: Union[str, ConceptDomain, None]) -> Optional[str]:
    if value is None:
        return None
    return value.value if isinstance(value, ConceptDomain) else str(value)


def validate_tier_enforcement(
    session: Session,
    domain: Union[str, ConceptDomain],
    governance_tier: int,
    standard_pack_id: Optional[UUID]
) -> ConceptValidationResult:
    """
    Check that a Tier 1/2 FINANCE concept points at a LAW-level pack.

    Concepts outside FINANCE, or with tier 3 and above, pass unchecked.
    The first hard error ends the check. A DEPRECATED pack is only a warning.

    Args:
        session: Database session used to load the pack
        domain: Concept domain
        governance_tier: Concept tier (1 = strictest)
        standard_pack_id: Primary standard pack id, may be None

    Returns:
        ConceptValidationResult
    """
    errors: List[str] = []
    warnings: List[str] = []

    if _enum_value(domain) != ConceptDomain.FINANCE.value or governance_tier not in GOVERNED_TIERS:
        return ConceptValidationResult(valid=True)

    if not standard_pack_id:
        errors.append(
            f"FINANCE concepts with governance tier {governance_tier} must have a "
            f"standard_pack_id_primary pointing to a LAW-level pack (e.g., IFRS/MFRS)."
        )
        return ConceptValidationResult(valid=False, errors=errors)

    pack = StandardPackRepository(session).get_by_id(standard_pack_id)
    if pack is None:
        errors.append(f"Standard pack with id {standard_pack_id} does not exist.")
        return ConceptValidationResult(valid=False, errors=errors)

    if pack.authority_level != AuthorityLevel.LAW:
        errors.append(
            f"FINANCE concepts with governance tier {governance_tier} must reference a "
            f"LAW-level standard pack, but pack has authority_level: {pack.authority_level.value}"
        )
        return ConceptValidationResult(valid=False, errors=errors)

    if pack.status == PackStatus.DEPRECATED:
        warnings.append("Standard pack is DEPRECATED. Consider updating to an ACTIVE pack.")

    return ConceptValidationResult(valid=True, errors=errors, warnings=warnings)


def validate_concept(
    session: Session,
    domain: Union[str, ConceptDomain],
    concept_type: Union[str, ConceptType],
    governance_tier: int,
    standard_pack_id: Optional[UUID]
) -> ConceptValidationResult:
    """Validate a concept before insert or update."""
    # Only tier enforcement applies for now, whatever the concept type
    result = validate_tier_enforcement(session, domain, governance_tier, standard_pack_id)
    if not result.valid:
        logger.info(
            f"Concept validation failed ({_enum_value(domain)}, tier {governance_tier}): "
            f"{len(result.errors)} error(s)"
        )
    return ConceptValidationResult(
        valid=result.valid,
        errors=list(result.errors),
        warnings=list(result.warnings),
    )
