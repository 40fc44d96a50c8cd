"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..analysis.models import MAX_SUGGESTIONS, DetectionOptions

__all__ = [
    "DETECTOR_BACKENDS",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "default_settings_path",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".quillcheck"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_DIR_ENV = "QUILLCHECK_SETTINGS_DIR"
_SETTINGS_VERSION = 1
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


def _env_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


def _env_int(raw: str) -> int:
    return int(raw, 10)


# Environment variable -> (Settings field, converter). Converters raise ValueError on bad input.
_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "QUILLCHECK_API_KEY": ("api_key", str),
    "QUILLCHECK_BASE_URL": ("base_url", str),
    "QUILLCHECK_MODEL": ("model", str),
    "QUILLCHECK_ORGANIZATION": ("organization", str),
    "QUILLCHECK_LANGUAGE": ("language", str),
    "QUILLCHECK_DETECTOR": ("detector_backend", str),
    "QUILLCHECK_LANGUAGETOOL_URL": ("languagetool_url", str),
    "QUILLCHECK_DEBUG_LOGGING": ("debug_logging", _env_bool),
    "QUILLCHECK_ANALYSIS_ENABLED": ("analysis_enabled", _env_bool),
    "QUILLCHECK_ENABLE_GRAMMAR": ("enable_grammar", _env_bool),
    "QUILLCHECK_ENABLE_SPELLING": ("enable_spelling", _env_bool),
    "QUILLCHECK_ENABLE_STYLE": ("enable_style", _env_bool),
    "QUILLCHECK_REQUEST_TIMEOUT": ("request_timeout", float),
    "QUILLCHECK_TEMPERATURE": ("temperature", float),
    "QUILLCHECK_DEBOUNCE_SECONDS": ("debounce_seconds", float),
    "QUILLCHECK_MIN_LENGTH": ("min_length", _env_int),
    "QUILLCHECK_MAX_RETRIES": ("max_retries", _env_int),
    "QUILLCHECK_MAX_SUGGESTIONS": ("max_suggestions", _env_int),
}
_API_KEY_FIELD = "api_key_ciphertext"
DETECTOR_BACKENDS: tuple[str, ...] = ("demo", "languagetool", "openai")


def default_settings_path() -> Path:
    override = os.environ.get(_SETTINGS_DIR_ENV)
    if override:
        return Path(override).expanduser() / "settings.json"
    return _DEFAULT_SETTINGS_PATH


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    analysis_enabled: bool = True
    enable_grammar: bool = True
    enable_spelling: bool = True
    enable_style: bool = True
    language: str = "en-US"
    debounce_seconds: float = 1.0
    min_length: int = 10
    detector_backend: str = "demo"
    languagetool_url: str = "https://api.languagetool.org/v2/check"
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    organization: str | None = None
    temperature: float = 0.2
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    max_suggestions: int = MAX_SUGGESTIONS
    context_radius: int = 10
    significant_length_ratio: float = 0.2
    significant_diff_ratio: float = 0.3
    prefix_anchor_chars: int = 5
    debug_logging: bool = False

    def detection_options(self) -> DetectionOptions:
        return DetectionOptions(
            enable_grammar=self.enable_grammar,
            enable_spelling=self.enable_spelling,
            enable_style=self.enable_style,
            language=self.language,
            max_suggestions=self.max_suggestions,
        )


class SecretVault:
    """Encrypts and decrypts sensitive strings with a symmetric Fernet key stored on disk."""

    name = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def strategy(self) -> str:
        return self.name

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._get_fernet().encrypt(secret.encode("utf-8"))
        return f"{self.name}:{token.decode('ascii')}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, _, payload = token.partition(":")
        if not payload:
            payload = prefix
        elif prefix != self.name:
            LOGGER.warning("Unknown secret token prefix %s; returning ciphertext.", prefix)
            return token
        try:
            return self._get_fernet().decrypt(payload.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or default_settings_path()
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()
        needs_migration = False
        if payload:
            plaintext_key, migrated = self._decrypt_api_key(
                payload.pop(_API_KEY_FIELD, None), payload.pop("api_key", None)
            )
            needs_migration = migrated
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if plaintext_key:
                settings = replace(settings, api_key=plaintext_key)

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if needs_migration or version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - depends on filesystem
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        settings = self._apply_env_overrides(settings)
        return _normalize(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = self._serialize(settings)
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        api_key = data.pop("api_key", "") or ""
        if api_key:
            try:
                data[_API_KEY_FIELD] = self._vault.encrypt(api_key)
            except (OSError, ValueError) as exc:  # pragma: no cover - extremely rare
                LOGGER.warning("Failed to encrypt API key: %s", exc)
        data["version"] = _SETTINGS_VERSION
        data["secret_backend"] = self._vault.strategy
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = value
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, (field_name, convert) in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None:
                continue
            try:
                overrides[field_name] = convert(raw)
            except ValueError:
                LOGGER.warning("Ignoring invalid value %r for %s", raw, env_name)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings

    def _decrypt_api_key(self, ciphertext: str | None, legacy_plaintext: str | None) -> tuple[str, bool]:
        if ciphertext:
            try:
                return self._vault.decrypt(ciphertext), False
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt API key: %s", exc)
                return "", False
        if legacy_plaintext:
            LOGGER.info("Detected plaintext API key; migrating to encrypted storage.")
            return legacy_plaintext, True
        return "", False


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)} - {"api_key"}
    return {key: value for key, value in payload.items() if key in allowed}


def _normalize(settings: Settings) -> Settings:
    backend = (settings.detector_backend or "").strip().lower()
    if backend not in DETECTOR_BACKENDS:
        LOGGER.warning("Unknown detector backend '%s'; defaulting to demo.", settings.detector_backend)
        backend = "demo"
    return replace(
        settings,
        detector_backend=backend,
        debounce_seconds=max(0.0, float(settings.debounce_seconds)),
        min_length=max(0, int(settings.min_length)),
        max_suggestions=min(MAX_SUGGESTIONS, max(1, int(settings.max_suggestions))),
        context_radius=max(0, int(settings.context_radius)),
        prefix_anchor_chars=max(1, int(settings.prefix_anchor_chars)),
    )


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
