"""
VAPID key generation for web push.

Prints a fresh P-256 key pair as .env lines. The public key is the
uncompressed point browsers pass to pushManager.subscribe(); the private
key is the raw scalar pywebpush signs with. Both are base64url without
padding.
"""
import click
from cryptography.hazmat.primitives import serialization
from py_vapid import Vapid
from py_vapid.utils import b64urlencode


def generate_vapid_keys():
    vapid = Vapid()
    vapid.generate_keys()
    public_key = vapid.public_key.public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
    )
    private_key = vapid.private_key.private_numbers().private_value.to_bytes(32, "big")
    return b64urlencode(public_key), b64urlencode(private_key)


@click.command()
@click.option("--subject", default="mailto:admin@example.com", show_default=True, help="Contact URI sent in VAPID claims")
def main(subject: str) -> None:
    """Generate VAPID keys for the push gateway."""
    public_key, private_key = generate_vapid_keys()
    click.echo("Add these to your .env file:")
    click.echo(f"VAPID_PUBLIC_KEY={public_key}")
    click.echo(f"VAPID_PRIVATE_KEY={private_key}")
    click.echo(f"VAPID_SUBJECT={subject}")


if __name__ == "__main__":
    main()
