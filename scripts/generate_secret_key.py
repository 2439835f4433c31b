#!/usr/bin/env python3
"""
Print a JWT signing secret for the API server's .env file.
"""

import secrets


def generate_secret_key(n_bytes: int = 32) -> str:
    return secrets.token_hex(n_bytes)


if __name__ == "__main__":
    print("# Add to .env")
    print(f"JWT_SECRET_KEY={generate_secret_key()}")
