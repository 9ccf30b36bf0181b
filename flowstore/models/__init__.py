from flowstore.models.base import Base
from flowstore.models.flow import Flow, FlowEdge, FlowItem, FlowNode
from flowstore.models.group import FlowGroup, GroupMember
from flowstore.models.user import User

__all__ = [
    "Base",
    "Flow",
    "FlowNode",
    "FlowEdge",
    "FlowItem",
    "FlowGroup",
    "GroupMember",
    "User",
]
