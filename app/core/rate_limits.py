"""Named rate limit configurations.

Operations are declared once here and validated when the module is
imported, instead of building ad hoc config objects at each call site.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType

from app.adapters.rate_limit.base import RateLimitConfig
from app.core.config import Settings, settings as default_settings
from app.core.errors import InvalidConfigError

MINUTE = 60.0
HOUR = 60 * MINUTE


class ConfigRegistry:
    """Immutable mapping from operation name to ``RateLimitConfig``.

    Attributes:
        default: Config used for operations missing from the table, if any.
    """

    def __init__(
        self,
        entries: Mapping[str, RateLimitConfig],
        *,
        default: RateLimitConfig | None = None,
    ) -> None:
        for name, config in entries.items():
            if not isinstance(name, str) or not name:
                raise InvalidConfigError(
                    code="rate_limit_invalid_operation",
                    message="Operation names must be non-empty strings",
                    details={"value": name},
                )
            if not isinstance(config, RateLimitConfig):
                raise InvalidConfigError(
                    code="rate_limit_invalid_config",
                    message=f"Operation '{name}' must map to a RateLimitConfig",
                    details={"operation": name},
                )
        if default is not None and not isinstance(default, RateLimitConfig):
            raise InvalidConfigError(
                code="rate_limit_invalid_config",
                message="Default must be a RateLimitConfig",
            )

        self._entries = MappingProxyType(dict(entries))
        self._default = default

    @property
    def default(self) -> RateLimitConfig | None:
        return self._default

    def __contains__(self, operation: object) -> bool:
        return operation in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def items(self):
        return self._entries.items()

    def get(self, operation: str) -> RateLimitConfig | None:
        return self._entries.get(operation)

    def resolve(self, operation: str, override: RateLimitConfig | None = None) -> RateLimitConfig:
        """Pick the config for ``operation``.

        Precedence: explicit one-off ``override``, then the table, then the
        registry default.

        Raises:
            InvalidConfigError: If nothing applies.
        """
        if override is not None:
            return override

        config = self._entries.get(operation, self._default)
        if config is None:
            raise InvalidConfigError(
                code="rate_limit_unknown_operation",
                message=f"No rate limit configured for operation '{operation}'",
                details={"operation": operation},
            )
        return config


DEFAULT_RATE_LIMITS: Mapping[str, RateLimitConfig] = MappingProxyType(
    {
        # Meal logging and preset creation
        "meal_log": RateLimitConfig(window_seconds=HOUR, max_requests=100),
        "settings_update": RateLimitConfig(window_seconds=HOUR, max_requests=10),
        "food_search": RateLimitConfig(window_seconds=MINUTE, max_requests=60),
        # General reads
        "read": RateLimitConfig(window_seconds=HOUR, max_requests=1000),
        "feedback": RateLimitConfig(window_seconds=HOUR, max_requests=5),
        "admin_read": RateLimitConfig(window_seconds=HOUR, max_requests=200),
        "admin_write": RateLimitConfig(window_seconds=HOUR, max_requests=50),
        "admin_bulk": RateLimitConfig(window_seconds=HOUR, max_requests=10),
        "auth_sync": RateLimitConfig(window_seconds=HOUR, max_requests=20),
        # Payment flow: deny when the store cannot vouch for the quota
        "stripe_checkout": RateLimitConfig(window_seconds=HOUR, max_requests=10, sensitive=True),
        # Per service, not per user
        "webhook": RateLimitConfig(window_seconds=MINUTE, max_requests=100),
    }
)


def build_registry(settings: Settings | None = None) -> ConfigRegistry:
    """Build the process registry with the settings-driven default config."""
    cfg = settings or default_settings
    return ConfigRegistry(
        DEFAULT_RATE_LIMITS,
        default=RateLimitConfig(
            window_seconds=cfg.rate_limit.default_window_seconds,
            max_requests=cfg.rate_limit.default_max_requests,
        ),
    )
