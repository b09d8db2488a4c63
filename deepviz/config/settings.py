import os
from pathlib import Path

import yaml
from pydantic import Field, PrivateAttr, field_validator
from pydantic_settings import (
    BaseSettings,
    EnvSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

APP_NAME = "deepviz"
CONFIG_FILE = "config.yaml"


def default_config_dir() -> Path:
    # XDG Base Directory: $XDG_CONFIG_HOME/deepviz o ~/.config/deepviz
    base = os.getenv("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / APP_NAME


def default_output_dir() -> Path:
    base = os.getenv("XDG_DATA_HOME")
    if not base:
        try:
            base = str(Path.home() / ".local" / "share")
        except RuntimeError:
            return Path("/tmp/deepviz-output")
    return Path(base) / APP_NAME


class _GeminiEnvSource(EnvSettingsSource):
    """Variables GEMINI_* como respaldo, solo para estas claves."""

    FIELDS = {"api_key", "model", "deep_research_agent"}

    def __init__(self, settings_cls: type[BaseSettings]):
        super().__init__(settings_cls, env_prefix="GEMINI_")

    def __call__(self) -> dict:
        return {k: v for k, v in super().__call__().items() if k in self.FIELDS}


class Settings(BaseSettings):
    """
    Prioridad (mayor a menor):
      1. argumentos explícitos
      2. variables de entorno DEEPVIZ_*
      3. .env
      4. GEMINI_API_KEY, GEMINI_MODEL, GEMINI_DEEP_RESEARCH_AGENT
      5. config.yaml del directorio de configuración
      6. valores por defecto
    """

    model_config = SettingsConfigDict(
        env_prefix="DEEPVIZ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        yaml_file=default_config_dir() / CONFIG_FILE,
    )

    output_dir: Path = Field(default_factory=default_output_dir)
    api_key: str | None = None

    # Deep Research
    deep_research_agent: str = "deep-research-pro-preview-12-2025"
    poll_interval: float = 10  # segundos
    poll_timeout: float = 600  # segundos, desde la creación del job
    cancel_timeout: float = 10  # plazo propio de la cancelación compensatoria

    # Imagen
    model: str = "gemini-3-pro-image-preview"
    aspect_ratio: str = "16:9"
    image_size: str = "2K"
    image_lang: str = "Japanese"
    auto_open: bool = True

    log_level: str = "INFO"

    _config_dir: Path = PrivateAttr(default_factory=default_config_dir)

    @field_validator("poll_interval", "poll_timeout", "cancel_timeout")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _GeminiEnvSource(settings_cls),
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # ---- rutas de salida ----
    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def config_path(self) -> Path:
        return self._config_dir / CONFIG_FILE

    @property
    def research_dir(self) -> Path:
        return Path(self.output_dir) / "research"

    @property
    def images_dir(self) -> Path:
        return Path(self.output_dir) / "images"

    @property
    def responses_dir(self) -> Path:
        return Path(self.output_dir) / "responses"

    @property
    def logs_dir(self) -> Path:
        return Path(self.output_dir) / "logs"

    def ensure_directories(self) -> None:
        for d in (self.research_dir, self.images_dir, self.responses_dir, self.logs_dir):
            d.mkdir(parents=True, exist_ok=True)

    def masked_api_key(self) -> str:
        key = self.api_key or ""
        if not key:
            return "(not set)"
        if len(key) <= 8:
            return "****"
        return key[:4] + "****" + key[-4:]

    def save(self) -> Path:
        """Vuelca la configuración actual a config.yaml (crea el directorio)."""
        self._config_dir.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        data["api_key"] = self.api_key or ""
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
        return self.config_path


def load_settings(config_dir: str | Path | None = None, **overrides) -> Settings:
    """
    Carga Settings leyendo config.yaml de config_dir (por defecto XDG).
    Un config.yaml inexistente no es error. Los overrides (flags de la CLI) se
    aplican al final y ganan a cualquier fuente.
    """
    cfg_dir = Path(config_dir).expanduser() if config_dir else default_config_dir()
    bound = type(
        "Settings",
        (Settings,),
        {
            "__module__": __name__,
            "model_config": SettingsConfigDict(
                **{**Settings.model_config, "yaml_file": cfg_dir / CONFIG_FILE}
            ),
        },
    )
    s = bound()
    s._config_dir = cfg_dir
    for key, value in overrides.items():
        setattr(s, key, value)
    return s
