from typing import NamedTuple

from nostr_sdk import Keys, PublicKey


class FeedIdentity(NamedTuple):
    public_key: str
    secret_key: str


def generate_identity() -> FeedIdentity:
    """Fresh secp256k1 keypair, hex encoded. Called once per registered feed."""
    keys = Keys.generate()
    return FeedIdentity(
        public_key=keys.public_key().to_hex(),
        secret_key=keys.secret_key().to_hex(),
    )


def load_keys(secret_key: str) -> Keys:
    return Keys.parse(secret_key)


def encode_npub(public_key: str) -> str:
    return PublicKey.parse(public_key).to_bech32()
