from spinarch.node.base import NodeRunner
from spinarch.node.container import ContainerRunner
from spinarch.node.controller import NodeLifecycleController, NodeRunState
from spinarch.node.native import NativeRunner, native_binary_path

__all__ = [
    "ContainerRunner",
    "NativeRunner",
    "NodeLifecycleController",
    "NodeRunState",
    "NodeRunner",
    "native_binary_path",
]
