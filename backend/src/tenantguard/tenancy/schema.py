"""Schema shaping for tenant reference columns.

Applied once per entity type at registration time, before tables are
created. Runtime enforcement never touches the schema.
"""

import uuid

from sqlalchemy import Column, Index, Integer, String, Uuid, event
from sqlalchemy import inspect as sa_inspect

from .exceptions import ConfigurationError
from .schemas import TenancyPolicy
from ..observability import get_logger

logger = get_logger(__name__)

# SQL types used for shadow reference columns
KEY_COLUMN_TYPES = {
    str: String,
    int: Integer,
    uuid.UUID: Uuid,
}


def is_mapped_class(entity_type: type) -> bool:
    """True if entity_type is mapped by the SQLAlchemy ORM."""
    return sa_inspect(entity_type, raiseerr=False) is not None


def configure_reference_column(entity_type: type, policy: TenancyPolicy) -> Column:
    """Shape the tenant reference column of a mapped entity.

    - Adds a shadow column if the entity does not declare the attribute
    - Marks the column NOT NULL for the NOT_NULL_* modes
    - Applies max_length to string columns declared without a length
    - Creates the reference index when requested
    - Loads the stored reference before it is overwritten, so flush-time
      checks see the value of expired or unloaded instances

    Args:
        entity_type: Declaratively mapped class
        policy: Resolved tenancy policy of the entity

    Returns:
        Column: The reference column

    Raises:
        ConfigurationError: If a shadow column is needed but cannot be added
    """
    mapper = sa_inspect(entity_type)
    name = policy.reference_name

    if name in mapper.columns:
        column = mapper.columns[name]
    else:
        column = _add_shadow_column(entity_type, policy)

    if policy.null_handling.requires_reference:
        column.nullable = False

    if policy.max_length and isinstance(column.type, String) and column.type.length is None:
        column.type = String(policy.max_length)

    if policy.index_references:
        _ensure_index(column, policy)

    _track_reference_history(entity_type, name)
    return column


def _add_shadow_column(entity_type: type, policy: TenancyPolicy) -> Column:
    if not hasattr(entity_type, "__table__"):
        raise ConfigurationError(
            f"Cannot add tenant reference {policy.reference_name!r} to "
            f"{entity_type.__name__}: entity is not declaratively mapped"
        )

    type_class = KEY_COLUMN_TYPES.get(policy.key_type)
    if type_class is None:
        raise ConfigurationError(
            f"No column type known for tenant key type {policy.key_type!r}; "
            f"declare {entity_type.__name__}.{policy.reference_name} explicitly"
        )

    if type_class is String and policy.max_length:
        column_type = String(policy.max_length)
    else:
        column_type = type_class()

    # Declarative intercepts setattr and maps the new column onto the table
    setattr(
        entity_type,
        policy.reference_name,
        Column(policy.reference_name, column_type, nullable=not policy.null_handling.requires_reference),
    )
    logger.debug(
        f"Added shadow tenant reference column to {entity_type.__name__}",
        extra={"entity_type": entity_type.__name__, "reference_name": policy.reference_name},
    )
    return sa_inspect(entity_type).columns[policy.reference_name]


def _ensure_index(column: Column, policy: TenancyPolicy) -> None:
    table = column.table
    name = policy.index_name or f"ix_{table.name}_{column.name}"

    for index in table.indexes:
        if index.name == name:
            return
        if [c.name for c in index.columns] == [column.name]:
            # Entity already declares a single-column index on the reference
            return

    Index(name, column)


def _load_previous_reference(target, value, oldvalue, initiator):
    pass


def _track_reference_history(entity_type: type, name: str) -> None:
    attribute = getattr(entity_type, name)
    if not event.contains(attribute, "set", _load_previous_reference):
        # active_history loads an expired or unloaded value before the set
        event.listen(attribute, "set", _load_previous_reference, active_history=True)
