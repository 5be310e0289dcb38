"""Command line entry point for the NetSuite MCP server.

Usage:
    netsuite-mcp                                # Run the MCP server over stdio
    netsuite-mcp auth [account_id] [client_id]  # Authenticate in the browser
    netsuite-mcp status                         # Show the stored session
    netsuite-mcp logout                         # Clear the stored session
"""

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from netsuite_mcp.core.config import Settings, resolve_credentials
from netsuite_mcp.oauth.manager import OAuthManager
from netsuite_mcp.server.server import NetSuiteMCPServer, remediation_checklist
from netsuite_mcp.utils.errors import ConfigurationError, NetSuiteMCPError
from netsuite_mcp.utils.logging_config import setup_logging


def build_manager(settings: Settings) -> OAuthManager:
    return OAuthManager(
        storage_path=settings.session_storage_path,
        callback_port=settings.oauth_callback_port,
        scope=settings.netsuite_oauth_scope,
    )


async def authenticate(settings: Settings, account_id: str | None, client_id: str | None) -> int:
    """Run the authorization flow from the terminal."""
    try:
        account_id, client_id = resolve_credentials(account_id, client_id, settings)
    except ConfigurationError as e:
        print(f"❌ {e}")
        print("\nUsage: netsuite-mcp auth <account_id> <client_id>")
        return 1

    manager = build_manager(settings)
    print("🔐 Starting NetSuite OAuth authentication...")
    print(f"📋 Account ID: {account_id}")
    print(f"📋 Client ID: {client_id[:8]}...")
    print(f"🌐 Callback Port: {manager.callback_port}\n")

    try:
        await manager.start_auth_flow(account_id, client_id)
    except NetSuiteMCPError as e:
        print(f"\n❌ Authentication failed: {e}\n")
        print(remediation_checklist(manager.callback_port))
        return 1

    print("\n✅ Authentication successful!")
    print(f"✅ Tokens have been saved to {manager.storage.session_file}")
    print("\nYou can now use the NetSuite MCP server.")
    return 0


def status(settings: Settings) -> int:
    """Print the stored session."""
    manager = build_manager(settings)
    try:
        record = manager.storage.load()
    except NetSuiteMCPError as e:
        print(f"❌ {e}")
        return 1

    if record is None or not record.is_usable():
        print("⚠️  Not authenticated")
        print(f"   Session file: {manager.storage.session_file}")
        return 1

    print("✅ Authenticated with NetSuite")
    print(f"📋 Account ID: {record.account_id}")
    if record.expires_at:
        remaining = record.time_until_expiry()
        state = "expired" if remaining is not None and remaining.total_seconds() <= 0 else "valid"
        print(f"⏰ Access token expires: {record.expires_at.isoformat()} ({state})")
    print(f"🔄 Refresh token: {'yes' if record.refresh_token else 'no'}")
    return 0


def logout(settings: Settings) -> int:
    """Clear the stored session."""
    manager = build_manager(settings)
    try:
        manager.clear_session()
    except NetSuiteMCPError as e:
        print(f"❌ Logout failed: {e}")
        return 1

    print("✅ Successfully logged out from NetSuite.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netsuite-mcp",
        description="NetSuite MCP server with OAuth 2.0 PKCE authentication",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run the MCP server (stdio)
    netsuite-mcp

    # Authenticate against a sandbox account
    netsuite-mcp auth 1234567_SB1 your-client-id

    # Authenticate with NETSUITE_ACCOUNT_ID / NETSUITE_CLIENT_ID from .env
    netsuite-mcp auth
""",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Run the MCP server over stdio (default)")

    auth_parser = subparsers.add_parser("auth", help="Authenticate with NetSuite")
    auth_parser.add_argument("account_id", nargs="?", help="NetSuite account ID")
    auth_parser.add_argument("client_id", nargs="?", help="OAuth 2.0 client ID")

    subparsers.add_parser("status", help="Show the stored session")
    subparsers.add_parser("logout", help="Clear the stored session")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    settings = Settings()
    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_file=settings.log_file,
    )

    if args.command == "auth":
        return asyncio.run(authenticate(settings, args.account_id, args.client_id))
    if args.command == "status":
        return status(settings)
    if args.command == "logout":
        return logout(settings)

    asyncio.run(NetSuiteMCPServer(settings).run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
