import sys
from typing import Dict, TextIO

from models import Balance

REPORT_HEADER = "client,available,held, total, locked"


def format_row(client_id: int, balance: Balance) -> str:
    return ",".join([
        str(client_id),
        str(balance.available),
        str(balance.held),
        str(balance.total),
        str(balance.locked).lower(),
    ])


def render_report(balances: Dict[int, Balance], out: TextIO = None, sort: bool = False) -> None:
    """Write the header and one line per client, in ledger order unless ``sort`` is set."""
    out = out or sys.stdout
    client_ids = sorted(balances) if sort else list(balances)
    out.write(REPORT_HEADER + "\n")
    for client_id in client_ids:
        out.write(format_row(client_id, balances[client_id]) + "\n")
