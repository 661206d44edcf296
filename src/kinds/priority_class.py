"""
PriorityClass - cluster scoped mapping from a class name to a pod priority.
"""

from typing import Any, Dict, Optional

from flatmodel import Field, FieldType, Schema
from kinds.base import ResourceKind
from mapper import metadata_fields
from poller import FieldEquals, Predicate

# Values above this are reserved for system critical classes
HIGHEST_USER_DEFINABLE_PRIORITY = 1000000000
LOWEST_PRIORITY = -2147483648


class PriorityClassKind(ResourceKind):
    """Kind definition for scheduling.k8s.io PriorityClass objects."""

    def __init__(self):
        self._schema = Schema(
            metadata_fields("priority class", namespaced=False)
            + [
                Field(
                    "description",
                    FieldType.STRING,
                    ("description",),
                    default="",
                    description=(
                        "An arbitrary string that usually provides guidelines "
                        "on when this priority class should be used."
                    ),
                ),
                Field(
                    "global_default",
                    FieldType.BOOL,
                    ("globalDefault",),
                    default=False,
                    description=(
                        "Whether this class is the default priority for pods "
                        "that do not name a priority class."
                    ),
                ),
                Field(
                    "value",
                    FieldType.INT,
                    ("value",),
                    required=True,
                    minimum=LOWEST_PRIORITY,
                    maximum=HIGHEST_USER_DEFINABLE_PRIORITY,
                    description="The priority that pods of this class receive.",
                ),
            ]
        )

    @property
    def name(self) -> str:
        return "priority_class"

    @property
    def api_version(self) -> str:
        return "scheduling.k8s.io/v1"

    @property
    def kind(self) -> str:
        return "PriorityClass"

    @property
    def plural(self) -> str:
        return "priorityclasses"

    @property
    def namespaced(self) -> bool:
        return False

    @property
    def schema(self) -> Schema:
        return self._schema

    def convergence_condition(self, draft: Dict[str, Any]) -> Optional[Predicate]:
        return FieldEquals(("value",), draft["value"])
