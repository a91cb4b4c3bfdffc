"""
Residual Block Implementation
=============================
Residual blocks untuk Lc0-style policy/value tower.
Squeeze-and-Excitation versi Lc0: excitation menghasilkan scale DAN bias
per channel.
"""

import torch
import torch.nn as nn
from typing import Literal


class SEBlock(nn.Module):
    """
    Squeeze-and-Excitation Block (Lc0 variant).

    1. Global Average Pooling (Squeeze)
    2. FC -> ReLU -> FC menghasilkan 2 * channels
    3. out = x * sigmoid(gamma) + beta
    """

    def __init__(self, channels: int, se_channels: int = 32):
        """
        Inisialisasi SE Block.

        Args:
            channels: Jumlah channels
            se_channels: Ukuran bottleneck
        """
        super().__init__()

        self.channels = channels
        self.squeeze = nn.AdaptiveAvgPool2d(1)
        self.fc1 = nn.Linear(channels, se_channels)
        self.activation = nn.ReLU(inplace=True)
        self.fc2 = nn.Linear(se_channels, 2 * channels)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        batch = x.size(0)

        y = self.squeeze(x).view(batch, self.channels)
        y = self.fc2(self.activation(self.fc1(y)))

        gamma, beta = torch.split(y, self.channels, dim=1)
        gamma = torch.sigmoid(gamma).view(batch, self.channels, 1, 1)
        beta = beta.view(batch, self.channels, 1, 1)

        return x * gamma + beta


class ResidualBlock(nn.Module):
    """
    Residual Block untuk tower.

    Arsitektur:
        Input -> Conv1 -> Norm -> ReLU -> Conv2 -> Norm -> SE -> Add(Input) -> ReLU
    """

    def __init__(
        self,
        channels: int,
        normalization: Literal['batch', 'layer', 'none'] = 'batch',
        use_se: bool = True,
        se_channels: int = 32
    ):
        """
        Inisialisasi Residual Block.

        Args:
            channels: Jumlah input/output channels
            normalization: Tipe normalization ('batch', 'layer', 'none')
            use_se: Gunakan Squeeze-and-Excitation block
            se_channels: Ukuran bottleneck SE
        """
        super().__init__()

        self.conv1 = nn.Conv2d(channels, channels, 3, padding=1, bias=False)
        self.conv2 = nn.Conv2d(channels, channels, 3, padding=1, bias=False)
        self.norm1 = make_norm_layer(normalization, channels)
        self.norm2 = make_norm_layer(normalization, channels)
        self.activation = nn.ReLU(inplace=True)
        self.se = SEBlock(channels, se_channels) if use_se else nn.Identity()

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        identity = x

        out = self.activation(self.norm1(self.conv1(x)))
        out = self.norm2(self.conv2(out))
        out = self.se(out)

        # Skip connection
        return self.activation(out + identity)


def make_norm_layer(norm_type: str, channels: int) -> nn.Module:
    """Get normalization layer berdasarkan tipe."""
    if norm_type == 'batch':
        return nn.BatchNorm2d(channels)
    elif norm_type == 'layer':
        # GroupNorm dengan 1 group = LayerNorm untuk Conv2D
        return nn.GroupNorm(1, channels)
    return nn.Identity()
