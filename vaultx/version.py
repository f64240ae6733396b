"""VaultX Meta information.
   VaultX keeps credentials encrypted at rest on a single device.
"""
__title__ = 'vaultx'
__description__ = (
   'VaultX keeps credentials encrypted at rest on a single device '
   'and derives per-service passwords from a master secret.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2025 VaultX Developers'
__author__ = 'VaultX Developers'
__license__ = 'Apache-2.0'
