"""On-chain portrait registry access."""
