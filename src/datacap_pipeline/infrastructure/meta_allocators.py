"""Registry of meta-allocator smart contracts known to the pipeline."""

from __future__ import annotations

from pydantic import BaseModel

from datacap_pipeline.core.config import MetaAllocatorConfig
from datacap_pipeline.core.enums import Pathway
from datacap_pipeline.core.errors import ConfigError


class MetaAllocator(BaseModel):
    model_config = {"frozen": True}

    name: Pathway
    signers: tuple[str, ...]
    eth_address: str
    eth_safe_address: str
    fil_address: str
    fil_safe_address: str


class MetaAllocatorRepository:
    """Name-keyed lookup over the configured meta-allocators."""

    def __init__(self, configs: list[MetaAllocatorConfig]) -> None:
        self._by_name: dict[Pathway, MetaAllocator] = {
            cfg.name: MetaAllocator(
                name=cfg.name,
                signers=tuple(cfg.signers),
                eth_address=cfg.eth_address,
                eth_safe_address=cfg.eth_safe_address,
                fil_address=cfg.fil_address,
                fil_safe_address=cfg.fil_safe_address,
            )
            for cfg in configs
        }

    def get_all(self) -> list[MetaAllocator]:
        return list(self._by_name.values())

    def get_by_name(self, name: Pathway | str) -> MetaAllocator:
        try:
            return self._by_name[Pathway(name)]
        except (KeyError, ValueError) as exc:
            raise ConfigError(f"Meta-allocator {name!r} is not configured") from exc
