"""Batch default fee structures. Revisions supersede; existing rows are never re-priced."""
import logging
from datetime import datetime
from typing import Optional

from pymongo.errors import DuplicateKeyError

from feedesk.config import settings
from feedesk.models.batch_fee import BatchFeeStructure, BatchFeeStructureCreate, BatchFeeStructureRevise
from feedesk.services.errors import ConcurrentUpdate, DuplicateStructure, NotFound, StateConflict
from feedesk.services.fee_components import active_components_by_id
from feedesk.services.ledger import parse_object_id

logger = logging.getLogger(__name__)


async def get_batch_structure(structure_id: str) -> BatchFeeStructure:
    structure = await BatchFeeStructure.get(parse_object_id(structure_id, "Batch fee structure"))
    if not structure:
        raise NotFound("Batch fee structure not found")
    return structure


async def get_active_for_batch(batch_id: str, session_id: str) -> Optional[BatchFeeStructure]:
    return await BatchFeeStructure.find_one(
        {"batch_id": batch_id, "session_id": session_id, "is_active": True}
    )


async def list_batch_structures(session_id: Optional[str] = None, include_superseded: bool = False) -> list[BatchFeeStructure]:
    query = {"org_id": settings.org_id}
    if session_id:
        query["session_id"] = session_id
    if not include_superseded:
        query["is_active"] = True
    return await BatchFeeStructure.find(query).sort("-created_at").to_list()


async def create_batch_structure(data: BatchFeeStructureCreate) -> BatchFeeStructure:
    if await get_active_for_batch(data.batch_id, data.session_id):
        raise DuplicateStructure(
            "This batch already has a fee structure for the session; revise it instead"
        )
    await active_components_by_id([li.fee_component_id for li in data.line_items])
    structure = BatchFeeStructure(
        org_id=settings.org_id,
        batch_id=data.batch_id,
        session_id=data.session_id,
        name=data.name.strip(),
        line_items=data.line_items,
        total_amount=sum(li.amount for li in data.line_items),
    )
    try:
        await structure.insert()
    except DuplicateKeyError:
        raise DuplicateStructure(
            "This batch already has a fee structure for the session; revise it instead"
        )
    logger.info(
        "Created batch fee structure %s for batch %s / session %s (total %d)",
        structure.id, structure.batch_id, structure.session_id, structure.total_amount,
    )
    return structure


async def revise_batch_structure(structure_id: str, data: BatchFeeStructureRevise) -> BatchFeeStructure:
    """Supersede an active structure with new amounts."""
    old = await get_batch_structure(structure_id)
    if not old.is_active:
        raise StateConflict("This fee structure has already been superseded")
    await active_components_by_id([li.fee_component_id for li in data.line_items])

    now = datetime.utcnow()
    claimed = await BatchFeeStructure.find_one({"_id": old.id, "is_active": True}).update(
        {"$set": {"is_active": False, "updated_at": now}}
    )
    if not claimed.matched_count:
        raise ConcurrentUpdate("This fee structure was revised concurrently; reload and retry")

    new = BatchFeeStructure(
        org_id=old.org_id,
        batch_id=old.batch_id,
        session_id=old.session_id,
        name=(data.name or old.name).strip(),
        line_items=data.line_items,
        total_amount=sum(li.amount for li in data.line_items),
    )
    try:
        await new.insert()
    except Exception:
        await BatchFeeStructure.find_one({"_id": old.id}).update({"$set": {"is_active": True}})
        raise
    await BatchFeeStructure.find_one({"_id": old.id}).update({"$set": {"superseded_by": str(new.id)}})
    logger.info("Batch fee structure %s superseded by %s", old.id, new.id)
    return new
