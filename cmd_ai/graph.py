from __future__ import annotations

from functools import partial
from typing import Callable, Optional

from langgraph.graph import END, StateGraph

from . import ux
from .backends import Backend
from .nodes import (
    approval_gate,
    danger_check,
    generate,
    parse,
    record,
    route_after_approval,
    route_after_parse,
    run_command,
)
from .safety import MatchMode
from .state import State


def build_graph(
    backend: Backend,
    match_mode: MatchMode = MatchMode.PREFIX,
    ask: Optional[Callable[[str], str]] = None,
):
    g = StateGraph(State)
    g.add_node("generate", partial(generate, backend=backend))
    g.add_node("parse", parse)
    g.add_node("danger_check", partial(danger_check, match_mode=match_mode))
    g.add_node("approval_gate", partial(approval_gate, ask=ask or ux.ask))
    g.add_node("run", run_command)
    g.add_node("record", partial(record, provider=backend.name))

    g.set_entry_point("generate")
    g.add_edge("generate", "parse")
    # no command found: skip straight to the audit record
    g.add_conditional_edges("parse", route_after_parse, {"danger_check": "danger_check", "record": "record"})
    g.add_edge("danger_check", "approval_gate")
    g.add_conditional_edges("approval_gate", route_after_approval, {"run": "run", "record": "record"})
    g.add_edge("run", "record")
    g.add_edge("record", END)

    return g.compile()
