"""Maps a requested allocator type to its allocation pathway."""

from __future__ import annotations

import logging

from datacap_pipeline.core.config import RegistryConfig
from datacap_pipeline.core.enums import AllocatorType, AuditType, Pathway
from datacap_pipeline.core.errors import UnknownAllocatorTypeError
from datacap_pipeline.domain.models import AllocationPath
from datacap_pipeline.infrastructure.meta_allocators import MetaAllocatorRepository

logger = logging.getLogger(__name__)

# allocator type -> (pathway, audit type); meta-allocator types resolve
# their address from the registry, RKH from config.
_ROUTES: dict[AllocatorType, tuple[Pathway, AuditType]] = {
    AllocatorType.MDMA: (Pathway.MDMA, AuditType.ENTERPRISE),
    AllocatorType.ORMA: (Pathway.ORMA, AuditType.ON_RAMP),
    AllocatorType.RKH: (Pathway.RKH, AuditType.MARKET_BASED),
    AllocatorType.AMA: (Pathway.AMA, AuditType.AUTOMATED),
}


class AllocationPathResolver:
    """Stateless, total mapping over :class:`AllocatorType`.

    Args:
        rkh_address: Address of the root key holder verifier actor.
        meta_allocators: Registry supplying meta-allocator addresses.
        rkh_threshold: Signatures needed on the RKH multisig.
    """

    def __init__(
        self,
        rkh_address: str,
        meta_allocators: MetaAllocatorRepository,
        rkh_threshold: int = 2,
    ) -> None:
        self._rkh_address = rkh_address
        self._meta_allocators = meta_allocators
        self.rkh_threshold = rkh_threshold

    @classmethod
    def from_config(cls, config: RegistryConfig) -> AllocationPathResolver:
        return cls(
            config.rkh_address,
            MetaAllocatorRepository(config.meta_allocators),
            rkh_threshold=config.rkh_threshold,
        )

    def resolve(self, allocator_type: AllocatorType | str) -> AllocationPath:
        """Return the routing decision for *allocator_type*.

        Raises:
            UnknownAllocatorTypeError: If the value is not an AllocatorType.
        """
        logger.info("Resolving allocation pathway for %s", allocator_type)
        try:
            kind = AllocatorType(allocator_type)
        except ValueError:
            raise UnknownAllocatorTypeError(allocator_type) from None

        pathway, audit_type = _ROUTES[kind]
        if pathway is Pathway.RKH:
            return AllocationPath(
                pathway=pathway,
                address=self._rkh_address,
                audit_type=audit_type,
                is_meta_allocator=False,
            )
        return AllocationPath(
            pathway=pathway,
            address=self._meta_allocators.get_by_name(pathway).fil_address,
            audit_type=audit_type,
            is_meta_allocator=True,
        )
