"""Filter - Named, multi-valued server-side result filters.

Describe* actions accept filters as indexed query parameters:

    Filter.1.Name=architecture
    Filter.1.Value.1=i386
    Filter.2.Name=instance-state-name
    Filter.2.Value.1=running
    Filter.2.Value.2=pending

Names are flattened in sorted order so the same filter always produces the
same request, regardless of the order in which names were added.
"""

from __future__ import annotations


class Filter:
    """Accumulates filter criteria for a Describe* request.

    Usage:
        filters = Filter()
        filters.add("architecture", "i386")
        filters.add("launch-index", "0")
        resp = ec2.describe_instances(filters=filters)
    """

    def __init__(self) -> None:
        self._values: dict[str, list[str]] = {}

    def add(self, name: str, *values: str) -> None:
        """Append one or more values under *name*.

        Repeated calls with the same name accumulate values in call order.
        """
        self._values.setdefault(name, []).extend(values)

    def names(self) -> list[str]:
        """Return filter names in flatten order."""
        return sorted(self._values)

    def values(self, name: str) -> list[str]:
        """Return the values added under *name* (empty list if none)."""
        return list(self._values.get(name, ()))

    def flatten(self, params: dict[str, str]) -> None:
        """Write Filter.<i>.Name / Filter.<i>.Value.<j> keys into *params*.

        Both indices are 1-based. A filter with no names writes nothing.
        """
        for i, name in enumerate(self.names(), start=1):
            prefix = f"Filter.{i}"
            params[f"{prefix}.Name"] = name
            for j, value in enumerate(self._values[name], start=1):
                params[f"{prefix}.Value.{j}"] = value

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Filter({self._values!r})"


def add_filter_params(params: dict[str, str], filters: Filter | None) -> None:
    """Flatten *filters* into *params*; ``None`` is accepted and ignored."""
    if filters is not None:
        filters.flatten(params)
