"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from .enums import Pathway


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class MetaAllocatorConfig(BaseModel):
    name: Pathway
    eth_address: str = ""
    fil_address: str = ""
    eth_safe_address: str = ""
    fil_safe_address: str = ""
    signers: list[str] = Field(default_factory=list)


def _default_meta_allocators() -> list[MetaAllocatorConfig]:
    return [
        MetaAllocatorConfig(
            name=Pathway.MDMA,
            eth_address="0xB6F5d279AEad97dFA45209F3E53969c2EF43C21d",
            fil_address="f410fw325e6novwl57jcsbhz6koljylxuhqq5jnp5ftq",
            eth_safe_address="0x2e25A2f6bC2C0b7669DFB25180Ed57e07dAabe9e",
            fil_safe_address="f410ffys2f5v4fqfxm2o7wjiyb3kx4b62vpu66gmu7ia",
            signers=[
                "0x106A371ab66ACA71753757eBD9Bb0a323e055229",
                "0xDABAe878B6D1045a9417Eaf2cc4280Dbc510f3f6",
                "0x5E9e7a90732c666EFB39B17Cf1C2af7E72d7EE90",
                "0xd697365CFEF16cF29477aFe7E4a3d5f452f83383",
            ],
        ),
        MetaAllocatorConfig(
            name=Pathway.ORMA,
            eth_address="0xE896C15F5120A07C2481e0fcf3d008E1C9E76C1f",
            fil_address="f410f5clmcx2recqhyjeb4d6phuai4he6o3a77guvfny",
            eth_safe_address="0xfeaCBca666CA237F01F0B192fB9F43D61F32F41a",
            fil_safe_address="f410f72wlzjtgzirx6apqwgjpxh2d2yptf5a2f6ns7gi",
            signers=[
                "0x7285B7D3248fde1cCF9E087993fdfC79EC54b54a",
                "0xDABAe878B6D1045a9417Eaf2cc4280Dbc510f3f6",
                "0x5E9e7a90732c666EFB39B17Cf1C2af7E72d7EE90",
            ],
        ),
        MetaAllocatorConfig(
            name=Pathway.AMA,
            eth_address="0x984376Abd1FF5518B6aE9d065C40696Ae916dc88",
            fil_address="f410ftbbxnk6r75krrnvotudfyqdjnlurnxei735ruja",
            eth_safe_address="0xe6A3b5afFc95f8dA2cf618BAd7C63311aBCeDa1d",
            fil_safe_address="f410f42r3ll74sx4nulhwdc5nprrtcgv45wq5rwcsh3y",
            signers=[
                "0x106A371ab66ACA71753757eBD9Bb0a323e055229",
                "0xd697365CFEF16cF29477aFe7E4a3d5f452f83383",
                "0x5E9e7a90732c666EFB39B17Cf1C2af7E72d7EE90",
            ],
        ),
    ]


class RegistryConfig(BaseModel):
    rkh_address: str = "f080"
    rkh_threshold: int = 2
    meta_allocators: list[MetaAllocatorConfig] = Field(
        default_factory=_default_meta_allocators
    )


class EventStoreConfig(BaseModel):
    path: str = "data/events.jsonl"
    # Off by default: saves are last-writer-wins unless enabled.
    optimistic_concurrency: bool = False


class AllocatorRegistryConfig(BaseModel):
    owner: str = "filecoin-project"
    repo: str = "Allocator-Registry"
    base_branch: str = "main"
    local_path: str = "data/registry"


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level pipeline settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    event_store: EventStoreConfig = Field(default_factory=EventStoreConfig)
    allocator_registry: AllocatorRegistryConfig = Field(
        default_factory=AllocatorRegistryConfig
    )
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "DATACAP_", "env_nested_delimiter": "__"}

    def validate_registry(self) -> None:
        """Every pathway served by a meta-allocator must be configured."""
        from .errors import ConfigError

        names = {ma.name for ma in self.registry.meta_allocators}
        missing = {Pathway.MDMA, Pathway.ORMA, Pathway.AMA} - names
        if missing:
            raise ConfigError(
                "Missing meta-allocator config for: "
                + ", ".join(sorted(p.value for p in missing))
            )
        if self.registry.rkh_threshold < 1:
            raise ConfigError("registry.rkh_threshold must be at least 1")


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    return Settings(**data)
