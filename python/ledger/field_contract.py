"""
Finance field contract: no finance code without a concept.

Every finance column or field must be anchored to a canonical concept in
the metadata kernel. Bootstrap and deploy tooling run these checks over
their field configurations and refuse to proceed on failures.

Example:
    config = FinanceFieldConfig(
        db_column_name='journal_entry_amount',
        mdm_concept_key='gl_journal_entry',
        required_domain='FINANCE',
        required_governance_tier=1,
        standard_pack_code='IFRS_CORE',
    )
    result = FieldContractValidator(metadata_service).validate_field_config(tenant_id, config)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

from database.metadata_service import MetadataService
from database.models import ActorType, AuthorityLevel, ConceptDomain

logger = logging.getLogger(__name__)


@dataclass
class FinanceFieldConfig:
    """Declaration of a finance field and the concept it must be anchored to"""
    db_column_name: str
    mdm_concept_key: str
    standard_pack_code: Optional[str] = None
    required_governance_tier: Optional[int] = None
    required_domain: Optional[str] = None


@dataclass
class FieldValidationResult:
    """Result of checking one field configuration"""
    valid: bool
    concept_id: Optional[UUID] = None
    canonical_key: Optional[str] = None
    standard_pack_code: Optional[str] = None
    governance_tier: Optional[int] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'concept_id': str(self.concept_id) if self.concept_id else None,
            'canonical_key': self.canonical_key,
            'standard_pack_code': self.standard_pack_code,
            'governance_tier': self.governance_tier,
            'errors': list(self.errors),
            'warnings': list(self.warnings),
        }


@dataclass
class FieldContractReport:
    """Aggregate result over many field configurations"""
    valid: bool
    results: List[FieldValidationResult]
    summary: Dict[str, int]


class FieldContractValidator:
    """Validates finance field configurations against the metadata kernel"""

    def __init__(self, metadata_service: MetadataService):
        self.metadata_service = metadata_service

    def validate_field_config(
        self,
        tenant_id: UUID,
        config: FinanceFieldConfig
    ) -> FieldValidationResult:
        """
        Validate one field configuration.

        Args:
            tenant_id: Tenant whose concepts are consulted
            config: Field configuration

        Returns:
            FieldValidationResult with errors and warnings
        """
        key = config.mdm_concept_key
        view = self.metadata_service.lookup_concept(
            tenant_id, key, actor_type=ActorType.SYSTEM
        )

        if view is None:
            return FieldValidationResult(
                valid=False,
                errors=[
                    f"Concept '{key}' not found in metadata kernel. "
                    f"All finance fields must be anchored to a canonical concept."
                ],
            )

        concept = view.concept
        pack = view.standard_pack
        errors: List[str] = []
        warnings: List[str] = []

        if config.required_domain and concept['domain'] != config.required_domain:
            errors.append(
                f"Concept '{key}' has domain '{concept['domain']}', "
                f"but field requires domain '{config.required_domain}'"
            )

        # Looser tier than required is only advisory
        if (
            config.required_governance_tier
            and concept['governance_tier'] > config.required_governance_tier
        ):
            warnings.append(
                f"Concept '{key}' has governance tier {concept['governance_tier']}, "
                f"but field requires tier {config.required_governance_tier} or lower"
            )

        if config.standard_pack_code:
            if pack is None:
                errors.append(
                    f"Concept '{key}' is not anchored to a standard pack, "
                    f"but field requires pack '{config.standard_pack_code}'"
                )
            elif pack['code'] != config.standard_pack_code:
                errors.append(
                    f"Concept '{key}' is anchored to pack '{pack['code']}', "
                    f"but field requires pack '{config.standard_pack_code}'"
                )

        if (
            concept['domain'] == ConceptDomain.FINANCE.value
            and concept['governance_tier'] == 1
            and (pack is None or pack['authority_level'] != AuthorityLevel.LAW.value)
        ):
            errors.append(
                f"Tier 1 finance concept '{key}' must be anchored to a LAW-level standard pack"
            )

        if errors:
            logger.info(f"Field {config.db_column_name} failed contract: {len(errors)} error(s)")

        return FieldValidationResult(
            valid=not errors,
            concept_id=UUID(concept['id']),
            canonical_key=concept['canonical_key'],
            standard_pack_code=pack['code'] if pack else None,
            governance_tier=concept['governance_tier'],
            errors=errors,
            warnings=warnings,
        )

    def validate_field_configs(
        self,
        tenant_id: UUID,
        configs: List[FinanceFieldConfig]
    ) -> FieldContractReport:
        """Validate many field configurations and summarize."""
        results = [self.validate_field_config(tenant_id, c) for c in configs]

        passed = sum(1 for r in results if r.valid)
        failed = len(results) - passed
        warning_count = sum(len(r.warnings) for r in results)

        return FieldContractReport(
            valid=failed == 0,
            results=results,
            summary={
                'total': len(configs),
                'passed': passed,
                'failed': failed,
                'warnings': warning_count,
            },
        )
