"""Core key management for PASSGATE."""

from .wallet import FileKeypair, KeypairProvider, load_mint_authority, parse_keypair

__all__ = ["FileKeypair", "KeypairProvider", "load_mint_authority", "parse_keypair"]
