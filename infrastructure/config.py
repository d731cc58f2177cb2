"""
DRIVER DIAGRAM CONFIG - Defaults for New Diagrams

Configuration is loaded once from config/driver_diagram.toml and converted
into a DiagramConfig struct. Components ask get_config() rather than
reading the file themselves.

Usage:
    from infrastructure.config import get_config

    config = get_config()
    config.appearance.font_size      # 14
    config.palette[0].label          # "Red"
"""
import msgspec
from typing import Optional, Dict, Any, List
from pathlib import Path
import logging
import tomllib
import warnings

from core.schemas import Appearance, ColumnTitles, PaletteEntry

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "driver_diagram.toml"


class DiagramConfig(msgspec.Struct, kw_only=True):
    """Effective configuration for new and cleared diagrams."""
    default_aim_text: str = "Describe the aim of this improvement project"
    export_filename: str = "driver-diagram.csv"
    appearance: Appearance = msgspec.field(default_factory=Appearance)
    titles: ColumnTitles = msgspec.field(default_factory=ColumnTitles)
    palette: List[PaletteEntry] = msgspec.field(default_factory=list)


# =============================================================================
# LOADING
# =============================================================================

def load_toml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load raw configuration from a TOML file.

    Returns:
        Dict with all configuration sections, or {} when the file is
        missing or unreadable
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        warnings.warn(f"Failed to load config from TOML: {e}")
        return {}


def build_config(raw: Dict[str, Any]) -> DiagramConfig:
    """
    Convert raw TOML sections into a DiagramConfig.

    The [diagram] table is flattened into the top level. A section with
    wrong types is dropped (with a warning) instead of failing the whole
    configuration.
    """
    flat: Dict[str, Any] = dict(raw.get("diagram", {}))
    for section in ("appearance", "titles", "palette"):
        if section in raw:
            flat[section] = raw[section]

    try:
        return msgspec.convert(flat, type=DiagramConfig)
    except msgspec.ValidationError as e:
        warnings.warn(f"Invalid configuration, checking sections one by one: {e}")

    config = DiagramConfig()
    for key, value in flat.items():
        try:
            partial = msgspec.convert({key: value}, type=DiagramConfig)
        except msgspec.ValidationError as e:
            warnings.warn(f"Ignoring config entry {key!r}: {e}")
            continue
        setattr(config, key, getattr(partial, key))
    return config


def load_config(path: Optional[Path] = None) -> DiagramConfig:
    """Load and convert configuration in one step."""
    config = build_config(load_toml_config(path))
    logger.debug(
        f"Loaded config: {len(config.palette)} palette colour(s), "
        f"export filename {config.export_filename}"
    )
    return config


# =============================================================================
# GLOBAL ACCESS
# =============================================================================

_config: Optional[DiagramConfig] = None


def get_config() -> DiagramConfig:
    """Get (loading once) the global configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[DiagramConfig]) -> None:
    """Replace the global configuration (None forces a reload on next use)."""
    global _config
    _config = config


def reset_config() -> None:
    set_config(None)
