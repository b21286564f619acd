#!/usr/bin/env python3
"""Manage CRM agents and their tool permissions.

Usage:
    python scripts/manage_agents.py create "Front Desk Bot"
    python scripts/manage_agents.py list
    python scripts/manage_agents.py grant <agent_id> tasks get_tasks create_task
    python scripts/manage_agents.py revoke <agent_id> tasks create_task
    python scripts/manage_agents.py revoke <agent_id> tasks          # disable the domain
    python scripts/manage_agents.py status <agent_id> Inactive
    python scripts/manage_agents.py show <agent_id>
    python scripts/manage_agents.py audit --agent-id <agent_id> --limit 20
"""

import argparse
import asyncio
import json
import sys

from dotenv import load_dotenv

from crm_mcp import admin
from crm_mcp.core.config import get_settings
from crm_mcp.permissions import ACTIVE, INACTIVE
from crm_mcp.storage import create_record_store
from crm_mcp.tools import build_registry
from crm_mcp.utils.errors import CRMError
from crm_mcp.utils.logging_config import setup_logging


async def run(args: argparse.Namespace) -> None:
    store = create_record_store(get_settings())
    try:
        if args.command == "create":
            agent = await admin.create_agent(store, args.name, status=args.status)
            print(f"✅ Created agent {agent.name} ({agent.id})")

        elif args.command == "list":
            for agent in await admin.list_agents(store):
                print(f"  {agent.id}  {agent.status:<8}  {agent.name}")

        elif args.command == "grant":
            permissions = await admin.grant_tools(
                store, build_registry(), args.agent_id, args.domain, args.tools
            )
            print(json.dumps(permissions.to_dict(), indent=2))

        elif args.command == "revoke":
            permissions = await admin.revoke_tools(
                store, args.agent_id, args.domain, args.tools or None
            )
            print(json.dumps(permissions.to_dict(), indent=2))

        elif args.command == "status":
            agent = await admin.set_agent_status(store, args.agent_id, args.status)
            print(f"✅ {agent.name} is now {agent.status}")

        elif args.command == "show":
            agent = await admin.get_agent(store, args.agent_id)
            permissions = await admin.get_agent_permissions(store, args.agent_id)
            print(json.dumps({"agent": agent.to_dict(), "permissions": permissions.to_dict()}, indent=2))

        elif args.command == "audit":
            for record in await admin.get_audit_trail(store, args.agent_id, args.limit):
                line = f"{record.created_at:%Y-%m-%d %H:%M:%S}  {record.outcome.value:<7}  {record.module}/{record.tool}  {record.agent_name}"
                if record.error:
                    line += f"  ({record.error})"
                print(line)
    finally:
        await store.close()


def main() -> None:
    load_dotenv()
    setup_logging("manage_agents", level="WARNING")

    parser = argparse.ArgumentParser(description="Manage CRM agents and permissions")
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Create an agent")
    create.add_argument("name")
    create.add_argument("--status", choices=[ACTIVE, INACTIVE], default=ACTIVE)

    commands.add_parser("list", help="List agents")

    grant = commands.add_parser("grant", help="Grant tools in one domain")
    grant.add_argument("agent_id")
    grant.add_argument("domain")
    grant.add_argument("tools", nargs="+")

    revoke = commands.add_parser("revoke", help="Revoke tools (or the whole domain)")
    revoke.add_argument("agent_id")
    revoke.add_argument("domain")
    revoke.add_argument("tools", nargs="*")

    status = commands.add_parser("status", help="Activate or deactivate an agent")
    status.add_argument("agent_id")
    status.add_argument("status", choices=[ACTIVE, INACTIVE])

    show = commands.add_parser("show", help="Show an agent and its permissions")
    show.add_argument("agent_id")

    audit = commands.add_parser("audit", help="Show recent audit records")
    audit.add_argument("--agent-id")
    audit.add_argument("--limit", type=int, default=50)

    args = parser.parse_args()
    try:
        asyncio.run(run(args))
    except CRMError as e:
        print(f"❌ {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
