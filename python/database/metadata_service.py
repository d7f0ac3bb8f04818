"""
Metadata Lookup Service for the PostingGuard Ledger

Read layer over the metadata "lawbook": concepts, aliases and standard
packs. It follows dependency injection patterns: the session is handed in
by the caller, never imported as module state.

Key Features:
- Case-insensitive concept resolution (canonical key first, then alias)
- Standard pack lookups by id, code or domain
- Concept detail with its primary pack's code, name and authority level
- Lookup telemetry in mdm_usage_log, isolated in a SAVEPOINT
- Governed concept definition (tier enforcement before insert)

Usage:
    # With FastAPI
    @app.get("/concepts/lookup")
    def lookup(
        tenant_id: UUID,
        term: str,
        service: MetadataService = Depends(get_metadata_service)
    ):
        return service.lookup_concept(tenant_id, term)

    # Standalone
    with db_provider.session_scope() as session:
        service = MetadataService(session, config)
        view = service.lookup_concept(tenant_id, "revenue")
"""

import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import (
    Concept,
    StandardPack,
    ActorType,
    ConceptDomain,
    ConceptType,
    MatchStrategy,
)
from database.repositories import (
    StandardPackRepository,
    ConceptRepository,
    TenantConceptRepository,
    UsageLogRepository,
)
logger = logging.getLogger(__name__)


class ConceptGovernanceError(Exception):
    """Raised when a concept fails governance validation and is not written"""

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("; ".join(self.errors))


@dataclass
class ConceptView:
    """A resolved concept with its primary pack and aliases"""
    concept: Dict[str, Any]
    standard_pack: Optional[Dict[str, Any]] = None
    aliases: List[Dict[str, Any]] = field(default_factory=list)
    matched_via: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concept": self.concept,
            "standard_pack": self.standard_pack,
            "aliases": self.aliases,
            "matched_via": self.matched_via,
        }


@dataclass
class ConceptDetail:
    """Concept flattened with its primary pack's code, name and authority level"""
    id: UUID
    tenant_id: UUID
    canonical_key: str
    label: str
    domain: str
    concept_type: str
    governance_tier: int
    standard_pack_id_primary: Optional[UUID]
    standard_ref: Optional[str]
    is_active: bool
    pack_code: Optional[str] = None
    pack_name: Optional[str] = None
    authority_level: Optional[str] = None


class MetadataService:
    """
    Metadata lookups for concept anchoring and governance.

    All reads propagate SQLAlchemyError. Only the usage-log write is
    isolated: a failure there is logged and the lookup still returns.
    """

    def __init__(self, session: Session, config: Optional[Any] = None):
        """
        Initialize the metadata service.

        Args:
            session: SQLAlchemy database session
            config: Optional ConfigManager instance
        """
        self.session = session
        self.config = config
        self._pack_repo = StandardPackRepository(session)
        self._concept_repo = ConceptRepository(session)

        self._usage_logging = True
        self._tool_name = "metadata.lookupConcept"
        if config is not None and hasattr(config, 'metadata'):
            self._usage_logging = config.metadata.usage_logging
            self._tool_name = config.metadata.tool_name

    # ------------------------------------------------------------------
    # Concepts
    # ------------------------------------------------------------------

    def lookup_concept(
        self,
        tenant_id: UUID,
        term: str,
        actor_type: ActorType = ActorType.AGENT
    ) -> Optional[ConceptView]:
        """
        Resolve a term to a concept of the tenant.

        The term is trimmed and lower-cased, then matched against
        canonical keys and, failing that, against aliases of the tenant's
        concepts. One usage-log row is written per call, found or not.

        Args:
            tenant_id: Tenant that owns the concept
            term: Canonical key or alias
            actor_type: Who is asking (for telemetry)

        Returns:
            ConceptView, or None when nothing matches
        """
        normalized = (term or "").strip().lower()
        concept: Optional[Concept] = None
        matched_via: Optional[MatchStrategy] = None

        if normalized:
            repo = TenantConceptRepository(self.session, tenant_id)
            concept = repo.find_by_canonical_key(normalized)
            if concept is not None:
                matched_via = MatchStrategy.CANONICAL_KEY
            else:
                concept = repo.find_by_alias(normalized)
                if concept is not None:
                    matched_via = MatchStrategy.ALIAS

        self._record_usage(tenant_id, term, concept, matched_via, actor_type)

        if concept is None:
            logger.debug(f"Concept lookup miss for tenant {tenant_id}: {normalized!r}")
            return None

        pack = None
        if concept.standard_pack_id_primary:
            pack = self._pack_repo.get_by_id(concept.standard_pack_id_primary)

        aliases = self._concept_repo.list_aliases(concept.id)

        return ConceptView(
            concept=concept.to_dict(),
            standard_pack=pack.to_dict() if pack else None,
            aliases=[a.to_dict() for a in aliases],
            matched_via=matched_via.value,
        )

    def _record_usage(
        self,
        tenant_id: UUID,
        term: str,
        concept: Optional[Concept],
        matched_via: Optional[MatchStrategy],
        actor_type: ActorType
    ) -> None:
        if not self._usage_logging:
            return
        try:
            with self.session.begin_nested():
                UsageLogRepository(self.session).record(
                    tenant_id=tenant_id,
                    term=term or "",
                    found=concept is not None,
                    concept_id=concept.id if concept else None,
                    canonical_key=concept.canonical_key if concept else None,
                    matched_via=matched_via,
                    actor_type=actor_type,
                    tool_name=self._tool_name,
                )
        except SQLAlchemyError as e:
            logger.warning(f"Failed to record concept usage for term {term!r}: {e}")

    def get_concept_by_id(self, concept_id: UUID) -> Optional[ConceptDetail]:
        """
        Load a concept with its primary pack's code, name and authority level.

        Pack fields are None when the concept has no primary pack.
        """
        row = self._concept_repo.get_with_pack(concept_id)
        if row is None:
            return None

        concept, pack_code, pack_name, authority_level = row
        return ConceptDetail(
            id=concept.id,
            tenant_id=concept.tenant_id,
            canonical_key=concept.canonical_key,
            label=concept.label,
            domain=concept.domain.value,
            concept_type=concept.concept_type.value,
            governance_tier=concept.governance_tier,
            standard_pack_id_primary=concept.standard_pack_id_primary,
            standard_ref=concept.standard_ref,
            is_active=concept.is_active,
            pack_code=pack_code,
            pack_name=pack_name,
            authority_level=authority_level,
        )

    def define_concept(self, tenant_id: UUID, data: Dict[str, Any]) -> Concept:
        """
        Validate and insert a concept for the tenant.

        Args:
            tenant_id: Owning tenant
            data: Concept attributes (canonical_key, label, domain,
                concept_type, governance_tier, standard_pack_id_primary, ...)

        Returns:
            The flushed Concept

        Raises:
            ConceptGovernanceError: If tier enforcement rejects the concept
            DuplicateEntityError: If the canonical key already exists
        """
        from ledger.concept_validator import validate_concept

        values = dict(data)
        values['domain'] = ConceptDomain(values['domain'])
        values['concept_type'] = ConceptType(values.get('concept_type', ConceptType.FIELD))
        values.setdefault('governance_tier', 3)
        values['canonical_key'] = values['canonical_key'].strip().lower()

        result = validate_concept(
            self.session,
            values['domain'],
            values['concept_type'],
            values['governance_tier'],
            values.get('standard_pack_id_primary'),
        )
        if not result.valid:
            raise ConceptGovernanceError(result.errors, result.warnings)

        for warning in result.warnings:
            logger.warning(f"Concept {values['canonical_key']}: {warning}")

        concept = TenantConceptRepository(self.session, tenant_id).create(values)
        logger.info(f"Defined concept {concept.canonical_key} (tier {concept.governance_tier})")
        return concept

    # ------------------------------------------------------------------
    # Standard packs
    # ------------------------------------------------------------------

    def list_standard_packs(self, domain: Optional[str] = None) -> List[StandardPack]:
        """All packs ordered by code, optionally for one domain."""
        return self._pack_repo.list(domain)

    def get_standard_pack_by_id(self, pack_id: UUID) -> Optional[StandardPack]:
        return self._pack_repo.get_by_id(pack_id)

    def get_standard_pack_by_code(self, code: str) -> Optional[StandardPack]:
        return self._pack_repo.get_by_code(code)
