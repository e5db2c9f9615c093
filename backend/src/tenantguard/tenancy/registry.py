"""Tenancy model registry.

One TenancyModelState exists per model definition. It is created by
has_tenancy() during model configuration, filled by register() (or the
tenanted() class decorator) as entity types are declared, and frozen before
the first session is created. After freezing it is only read, so lookups need
no locking.

Example:
    tenancy = has_tenancy(uuid.UUID, TenantReferenceOptions(reference_name="org_id"))

    @tenancy.tenanted()
    class Invoice(Base):
        __tablename__ = "invoice"
        id = Column(Integer, primary_key=True)
        org_id = Column(Uuid, nullable=False)

    @tenancy.tenanted(null_handling=NullTenantReferenceHandling.NOT_NULL_GLOBAL_ACCESS)
    class AuditEvent(Base):
        ...

    tenancy.freeze()
"""

from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar, Union

from pydantic import ValidationError

from .exceptions import ConfigurationError
from .schema import configure_reference_column, is_mapped_class
from .schemas import NullTenantReferenceHandling, TenancyPolicy, TenantReferenceOptions
from ..observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=type)

# Marker for "use the default-of-type unset value"
_DEFAULT_UNSET = object()


def default_unset_value(key_type: type) -> Any:
    """Value meaning "no tenant assigned" for a key type.

    Integer keys default to 0, every other key type to None.
    """
    if key_type is int:
        return 0
    return None


class TenancyModelState:
    """Tenancy configuration of one data model.

    Attributes:
        key_type: Python type of tenant ids (str, int, uuid.UUID, ...)
        unset_value: Sentinel meaning "no tenant assigned yet"
        default_options: Fallback values for unspecified registration settings
    """

    def __init__(
        self,
        key_type: type,
        default_options: Optional[TenantReferenceOptions] = None,
        unset_value: Any = _DEFAULT_UNSET,
    ):
        if not isinstance(key_type, type):
            raise ConfigurationError(f"Tenant key type must be a type, got {key_type!r}")

        self.key_type = key_type
        self.unset_value = default_unset_value(key_type) if unset_value is _DEFAULT_UNSET else unset_value
        self.default_options = default_options or TenantReferenceOptions()
        self._policies: Dict[type, TenancyPolicy] = {}
        self._frozen = False

    @classmethod
    def from_settings(
        cls,
        key_type: type,
        settings: Any = None,
        unset_value: Any = _DEFAULT_UNSET,
    ) -> "TenancyModelState":
        """Create a model state using TENANT_* settings as defaults."""
        from ..config import get_settings

        settings = settings or get_settings()
        return cls(key_type, settings.reference_options(), unset_value=unset_value)

    @property
    def policies(self) -> Mapping[type, TenancyPolicy]:
        """Read-only view of entity type -> policy."""
        return MappingProxyType(self._policies)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "TenancyModelState":
        """Mark model configuration as complete; later registrations fail."""
        if not self._frozen:
            self._frozen = True
            logger.info(
                f"Tenancy model frozen with {len(self._policies)} tenanted entity types",
                extra={"change_count": len(self._policies)},
            )
        return self

    def register(
        self,
        entity_type: type,
        reference_name: Optional[str] = None,
        has_index: Optional[bool] = None,
        index_name_format: Optional[str] = None,
        null_handling: Optional[Union[NullTenantReferenceHandling, str]] = None,
        max_length: Optional[int] = None,
    ) -> TenancyPolicy:
        """Register an entity type as tenanted.

        Unspecified arguments fall back to ``default_options``. Registering
        the same type twice replaces the earlier policy.

        Args:
            entity_type: Entity class (SQLAlchemy mapped or plain)
            reference_name: Attribute holding the owning tenant id
            has_index: Index the reference column
            index_name_format: Index name or format, '{0}' = reference name
            null_handling: Null tenant reference handling mode
            max_length: Maximum length of string tenant keys

        Returns:
            TenancyPolicy: The effective, immutable policy

        Raises:
            ConfigurationError: If the model is frozen, entity_type is not a
                class, no reference name resolves, or an option is invalid
        """
        if self._frozen:
            raise ConfigurationError(
                f"Cannot register {getattr(entity_type, '__name__', entity_type)}: "
                f"tenancy model configuration is frozen"
            )
        if not isinstance(entity_type, type):
            raise ConfigurationError(f"Tenanted entity must be a class, got {entity_type!r}")

        defaults = self.default_options
        reference_name = reference_name or defaults.reference_name
        if not reference_name:
            raise ConfigurationError(
                f"No tenant reference name configured for {entity_type.__name__} "
                f"and no default reference name is set"
            )

        try:
            policy = TenancyPolicy(
                entity_name=entity_type.__name__,
                reference_name=reference_name,
                key_type=self.key_type,
                null_handling=null_handling if null_handling is not None else defaults.null_handling,
                index_references=has_index if has_index is not None else defaults.index_references,
                index_name_format=index_name_format if index_name_format is not None else defaults.index_name_format,
                max_length=max_length if max_length is not None else defaults.max_length,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid tenancy options for {entity_type.__name__}: {e}") from e

        if is_mapped_class(entity_type):
            configure_reference_column(entity_type, policy)

        self._policies[entity_type] = policy
        logger.debug(
            f"Registered tenanted entity {entity_type.__name__}",
            extra={
                "entity_type": entity_type.__name__,
                "reference_name": policy.reference_name,
                "null_handling": policy.null_handling.value,
            },
        )
        return policy

    def tenanted(self, **overrides: Any) -> Callable[[T], T]:
        """Class decorator form of register()."""
        def decorator(entity_type: T) -> T:
            self.register(entity_type, **overrides)
            return entity_type
        return decorator

    def lookup(self, entity_type: type) -> Optional[TenancyPolicy]:
        """Policy of an entity type, or None if the type is not tenanted."""
        return self._policies.get(entity_type)

    def tenanted_types(self) -> List[type]:
        return list(self._policies)

    def is_unset(self, value: Any) -> bool:
        """True if ``value`` means "no tenant" (None or the unset sentinel)."""
        return value is None or value == self.unset_value

    def __repr__(self):
        return (
            f"<TenancyModelState(key_type={self.key_type.__name__}, "
            f"entities={len(self._policies)}, frozen={self._frozen})>"
        )


def has_tenancy(
    key_type: type,
    options: Optional[TenantReferenceOptions] = None,
    unset_value: Any = _DEFAULT_UNSET,
) -> TenancyModelState:
    """Configure a data model for multi-tenancy.

    Args:
        key_type: Type of tenant ids shared by every tenanted entity
        options: Default tenant reference options
        unset_value: Value meaning "no tenant assigned"; defaults to 0 for
            int keys and None otherwise

    Returns:
        TenancyModelState: State to pass to every registration and install call
    """
    return TenancyModelState(key_type, options, unset_value=unset_value)
