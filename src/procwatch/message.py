"""Human-readable summary line for a check result."""

from typing import Optional

from procwatch.config import CheckConfig


def compose_message(matched: int, config: CheckConfig,
                    metric_total: Optional[int] = None) -> str:
    """Describe how many processes matched and which filters were active.

    Clauses always appear in the same order.
    """
    msg = f"Found {matched} matching processes"
    if config.cmd_pat:
        msg += f"; cmd /{config.cmd_pat}/"
    if config.state is not None:
        msg += f"; state {','.join(config.state)}"
    if config.user is not None:
        msg += f"; user {','.join(config.user)}"
    if config.vsz is not None:
        msg += f"; vsz > {config.vsz}"
    if config.rss is not None:
        msg += f"; rss > {config.rss}"
    if config.pcpu is not None:
        msg += f"; pcpu > {config.pcpu}"
    if config.file_pid is not None:
        msg += f"; pid {config.file_pid}"
    if config.metric and metric_total is not None:
        msg += f"; {config.metric} == {metric_total}"
    return msg
