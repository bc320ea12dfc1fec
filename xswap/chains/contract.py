"""
Contract base class.

A contract is a stateless handler object; all state lives in the storage
handed in through Deps. The runtime calls instantiate once per instance,
then execute/query for every call and reply for every submessage that asked
for one.
"""

from typing import Any

from .types import Deps, Env, MessageInfo, Reply, Response
from ..errors import UnknownReply


class Contract:
    name = "contract"
    version = "0.1.0"

    def instantiate(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        raise NotImplementedError

    def execute(self, deps: Deps, env: Env, info: MessageInfo, msg: Any) -> Response:
        raise NotImplementedError

    def query(self, deps: Deps, env: Env, msg: Any) -> Any:
        raise NotImplementedError

    def reply(self, deps: Deps, env: Env, reply: Reply) -> Response:
        raise UnknownReply(f"{self.name} does not handle reply {reply.id}")
