from datetime import timedelta

from auth import create_access_token


def generate_token(identity: str, email: str | None = None, expiration_minutes: int = 525600):
    """Generate a token for use in development."""
    return create_access_token(
        identity, email or None, timedelta(minutes=expiration_minutes)
    )


if __name__ == "__main__":
    identity = input("Enter identity id: ")
    email = input("Enter email (leave blank to use the stored profile): ").strip()
    token = generate_token(identity, email)

    print(
        f"\nGenerated token for {identity}. Send it as a bearer token:\n\n"
        f"Authorization: Bearer {token}"
    )
