"""CSV export of final auction results."""

from __future__ import annotations

import csv
from io import StringIO
from typing import Sequence

from liveauction.engine import TeamResult


RESULT_HEADERS = ("Team", "Reg No", "Player", "Class", "Position", "Sold Amount")


def _format_amount(amount: float | None) -> str:
    if amount is None:
        return ""
    return f"{amount:g}"


def export_results_to_csv(results: Sequence[TeamResult]) -> str:
    """One row per bought player; a team with an empty roster still gets a row."""

    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(RESULT_HEADERS)
    for result in results:
        if not result.players:
            writer.writerow([result.team_name, "", "", "", "", ""])
            continue
        for player in result.players:
            writer.writerow(
                [
                    result.team_name,
                    player.reg_no or "",
                    player.name,
                    player.player_class,
                    player.position,
                    _format_amount(player.sold_amount),
                ]
            )
    return buffer.getvalue()


__all__ = ["RESULT_HEADERS", "export_results_to_csv"]
