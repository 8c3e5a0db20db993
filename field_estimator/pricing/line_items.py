"""
Line-item tree helpers.

An assembly line added to an estimate can be expanded into a *group*: the
assembly line gets a ``group_id`` and every child carries
``parent_group_id`` plus a per-unit ``quantity_factor``. A child's quantity
is always ``quantity_factor × parent quantity``, so changing the parent's
quantity rescales every child while the factor survives edits.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional, Sequence

from field_estimator.models.schemas import (
    Assembly,
    AssemblyLine,
    LaborLine,
    LineItem,
    LineItemBase,
)


def groups_by_id(items: Iterable[LineItemBase]) -> dict[str, LineItemBase]:
    return {it.group_id: it for it in items if it.group_id}


def group_heads(items: Sequence[LineItemBase]) -> set[str]:
    """Group ids that actually have children in ``items``."""
    groups = groups_by_id(items)
    return {it.parent_group_id for it in items if it.parent_group_id in groups}


def effective_quantities(items: Sequence[LineItemBase]) -> dict[str, float]:
    """
    Effective quantity of every line, keyed by line id.

    Children with a stored factor derive from their parent (recursively for
    nested groups); everything else uses its own quantity. Cycles and
    dangling parent links fall back to the line's own quantity.
    """
    groups = groups_by_id(items)
    resolved: dict[str, float] = {}

    def _qty(item: LineItemBase, visiting: frozenset[str]) -> float:
        if item.id in resolved:
            return resolved[item.id]
        qty = max(0.0, item.quantity)
        parent = groups.get(item.parent_group_id) if item.parent_group_id else None
        if (
            parent is not None
            and parent.id != item.id
            and parent.id not in visiting
            and item.quantity_factor is not None
        ):
            qty = max(0.0, item.quantity_factor) * _qty(parent, visiting | {item.id})
        resolved[item.id] = qty
        return qty

    for it in items:
        _qty(it, frozenset())
    return resolved


def quantity_factor_for(child_quantity: float, parent_quantity: float) -> float:
    """Per-unit factor of a child relative to its parent."""
    if parent_quantity <= 0:
        return max(0.0, child_quantity)
    return max(0.0, child_quantity) / parent_quantity


def attach_to_group(child: LineItem, parent: LineItemBase) -> LineItem:
    """Return a copy of ``child`` linked under ``parent`` with its factor persisted."""
    if not parent.group_id:
        raise ValueError(f"Line {parent.id} is not a group head (no group_id)")
    return child.model_copy(update={
        "parent_group_id": parent.group_id,
        "quantity_factor": quantity_factor_for(child.quantity, parent.quantity),
    })


def set_group_quantity(items: Sequence[LineItem], group_id: str, quantity: float) -> list[LineItem]:
    """
    Set a group head's quantity and rescale all of its descendants.

    Returns a new list; the input lines are not modified.
    """
    groups = groups_by_id(items)
    if group_id not in groups:
        raise KeyError(f"Unknown group: {group_id}")

    head_id = groups[group_id].id
    updated = [
        it.model_copy(update={"quantity": max(0.0, quantity)}) if it.id == head_id else it
        for it in items
    ]
    quantities = effective_quantities(updated)
    return [
        it.model_copy(update={"quantity": quantities[it.id]})
        if it.parent_group_id and it.quantity_factor is not None
        else it
        for it in updated
    ]


def expand_assembly(
    line: AssemblyLine,
    assembly: Assembly,
    group_id: Optional[str] = None,
) -> list[LineItem]:
    """
    Turn an assembly line into a group head followed by its children.

    Each assembly item's own quantity becomes the child's per-unit factor;
    labor lines count once per assembly unit.
    """
    head = line.model_copy(update={"group_id": line.group_id or group_id or uuid.uuid4().hex})
    children: list[LineItem] = [head]
    for item in assembly.items:
        factor = 1.0 if isinstance(item, LaborLine) else max(0.0, item.quantity)
        children.append(item.model_copy(update={
            "id": uuid.uuid4().hex,
            "parent_group_id": head.group_id,
            "quantity_factor": factor,
            "quantity": factor * max(0.0, head.quantity),
        }))
    return children
