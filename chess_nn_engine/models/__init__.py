# models package
from .network import Lc0StyleNetwork, create_network, export_torchscript
from .residual_block import ResidualBlock, SEBlock

__all__ = ['Lc0StyleNetwork', 'create_network', 'export_torchscript', 'ResidualBlock', 'SEBlock']
