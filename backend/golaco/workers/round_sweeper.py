"""Periodic sweep applying due round transitions across all championships."""

import logging

from golaco.services import round_service

logger = logging.getLogger("golaco.round_sweeper")


async def sweep_rounds() -> dict:
    """Activate rounds whose window opened and finish rounds whose window closed.

    Lazy evaluation on reads covers the same ground for a single round or
    championship; the sweep keeps idle championships moving too.
    """
    result = await round_service.apply_due_transitions()
    if result["activated"] or result["finished"]:
        logger.info(
            "Round sweep: activated=%d finished=%d",
            result["activated"], result["finished"],
        )
    else:
        logger.debug("Round sweep: nothing due")
    return result
