"""
Lc0-style Policy/Value Network
==============================
Reference network yang memenuhi tensor contract engine:

Input: (batch, 112, 8, 8)
Output:
    - policy: (batch, 1858) raw logits, index sesuai POLICY_INDEX
    - wdl: (batch, 3) win/draw/loss probabilities untuk side to move

Dipakai untuk menghasilkan TorchScript model yang bisa di-load oleh
TorchScriptInferenceSession (smoke test, development tanpa weights Lc0).
"""

import io
import torch
import torch.nn as nn
import torch.nn.functional as F
from typing import Any, Dict, Tuple

from .residual_block import ResidualBlock, make_norm_layer
from ..encoding.policy_index import POLICY_SIZE
from ..encoding.position_encoder import TOTAL_PLANES


class Lc0StyleNetwork(nn.Module):
    """
    Residual tower dengan policy head dan WDL head.

    Arsitektur:
    - Input Conv: 112 planes -> num_filters
    - Backbone: Stack of (SE) Residual Blocks
    - Policy Head: Conv 1x1 -> FC ke 1858 logits
    - WDL Head: Conv 1x1 -> FC -> FC(3) -> softmax
    """

    def __init__(
        self,
        num_filters: int = 64,
        num_residual_blocks: int = 6,
        normalization: str = 'batch',
        use_se: bool = True,
        se_channels: int = 32
    ):
        """
        Inisialisasi network.

        Args:
            num_filters: Jumlah filters di tower (e.g. 64 untuk arch "64x6-SE")
            num_residual_blocks: Jumlah residual blocks
            normalization: Tipe normalization ('batch', 'layer', 'none')
            use_se: Gunakan Squeeze-and-Excitation
            se_channels: Ukuran bottleneck SE
        """
        super().__init__()

        self.num_filters = num_filters
        self.num_residual_blocks = num_residual_blocks
        self.use_se = use_se

        # Input encoder
        self.input_conv = nn.Conv2d(TOTAL_PLANES, num_filters, 3, padding=1, bias=False)
        self.input_norm = make_norm_layer(normalization, num_filters)

        # Residual backbone
        self.residual_blocks = nn.ModuleList([
            ResidualBlock(num_filters, normalization, use_se, se_channels)
            for _ in range(num_residual_blocks)
        ])

        # Policy head
        self.policy_conv = nn.Conv2d(num_filters, 32, 1, bias=False)
        self.policy_norm = make_norm_layer(normalization, 32)
        self.policy_fc = nn.Linear(32 * 64, POLICY_SIZE)

        # WDL head
        self.value_conv = nn.Conv2d(num_filters, 32, 1, bias=False)
        self.value_norm = make_norm_layer(normalization, 32)
        self.value_fc1 = nn.Linear(32 * 64, 128)
        self.value_fc2 = nn.Linear(128, 3)

        self._init_weights()

    def _init_weights(self):
        """Initialize network weights."""
        for m in self.modules():
            if isinstance(m, nn.Conv2d):
                nn.init.kaiming_normal_(m.weight, mode='fan_out', nonlinearity='relu')
            elif isinstance(m, nn.Linear):
                nn.init.kaiming_normal_(m.weight, mode='fan_in', nonlinearity='relu')
                if m.bias is not None:
                    nn.init.zeros_(m.bias)

        # Output layers kecil supaya policy awal mendekati uniform
        nn.init.xavier_uniform_(self.policy_fc.weight, gain=0.01)
        nn.init.xavier_uniform_(self.value_fc2.weight, gain=0.01)

    def forward(self, x: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Forward pass.

        Args:
            x: Input tensor shape (batch, 112, 8, 8)

        Returns:
            policy: Raw logits shape (batch, 1858)
            wdl: Probabilities shape (batch, 3)
        """
        out = F.relu(self.input_norm(self.input_conv(x)))

        for block in self.residual_blocks:
            out = block(out)

        policy = F.relu(self.policy_norm(self.policy_conv(out)))
        policy = self.policy_fc(policy.flatten(1))

        value = F.relu(self.value_norm(self.value_conv(out)))
        value = F.relu(self.value_fc1(value.flatten(1)))
        wdl = F.softmax(self.value_fc2(value), dim=-1)

        return policy, wdl

    def count_parameters(self) -> int:
        """Count total trainable parameters."""
        return sum(p.numel() for p in self.parameters() if p.requires_grad)

    def get_config(self) -> Dict[str, Any]:
        """Get network configuration."""
        arch = f"{self.num_filters}x{self.num_residual_blocks}" + ('-SE' if self.use_se else '')
        return {
            'arch': arch,
            'num_filters': self.num_filters,
            'num_residual_blocks': self.num_residual_blocks,
            'policy_size': POLICY_SIZE,
            'total_parameters': self.count_parameters()
        }


def create_network(config: Dict[str, Any]) -> Lc0StyleNetwork:
    """
    Factory function untuk membuat network dari config.

    Args:
        config: Network configuration dictionary

    Returns:
        Initialized network
    """
    return Lc0StyleNetwork(
        num_filters=config.get('num_filters', 64),
        num_residual_blocks=config.get('num_residual_blocks', 6),
        normalization=config.get('normalization', 'batch'),
        use_se=config.get('use_se', True),
        se_channels=config.get('se_channels', 32)
    )


def export_torchscript(network: nn.Module) -> bytes:
    """
    Trace network ke TorchScript archive dalam bentuk bytes.

    Args:
        network: Network dengan forward(x) -> (policy, wdl)

    Returns:
        bytes: Archive yang bisa di-load dengan torch.jit.load
    """
    network.eval()
    example = torch.zeros(1, TOTAL_PLANES, 8, 8, dtype=torch.float32)
    with torch.no_grad():
        traced = torch.jit.trace(network, example)

    buffer = io.BytesIO()
    torch.jit.save(traced, buffer)
    return buffer.getvalue()
