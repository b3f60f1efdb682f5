# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""tunnelctl - Persistent SSH port forwards over multiplexed master connections."""

__version__ = "0.1.0"
