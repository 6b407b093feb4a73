"""
EACC CLI - inspect marketplace state from the terminal.

Commands:
  eacc job <id>          - On-chain job plus the state replayed from its events
  eacc events <id>       - Decoded event log of a job
  eacc user <address>    - User profile and rating
  eacc sign-take <id>    - Sign a take for the current events length (EACC_PRIVATE_KEY)
  eacc info              - Marketplace contract settings
"""

import sys

from eacc import lifecycle
from eacc.client import MarketplaceClient
from eacc.config import ClientConfig, load_env
from eacc.errors import EACCError
from eacc.wallet import KeySigner


def _client() -> MarketplaceClient:
    return MarketplaceClient(ClientConfig.from_env())


def _arg(index: int, usage: str) -> str:
    if len(sys.argv) <= index:
        print(f"Usage: {usage}")
        sys.exit(1)
    return sys.argv[index].strip()


def _job_id(usage: str) -> int:
    raw = _arg(2, usage)
    if not raw.isdigit():
        print(f"Job id must be a number, got {raw!r}")
        sys.exit(1)
    return int(raw)


def job_command():
    job_id = _job_id("eacc job <id>")
    client = _client()
    job = client.get_job(job_id)
    print(f"Job {job.id}: {job.title}")
    print(f"  state:      {job.state.name}")
    print(f"  creator:    {job.roles.creator}")
    print(f"  worker:     {job.roles.worker or '-'}")
    print(f"  arbitrator: {job.roles.arbitrator or '-'}")
    print(f"  amount:     {job.amount} ({job.token})")
    print(f"  tags:       {', '.join(job.tags)}")
    print(f"  events:     {job.events_length}")
    replayed = client.job_state(job_id)
    if replayed.state != job.state or replayed.disputed != job.disputed:
        print(f"  replayed:   {replayed.state.name} (disputed={replayed.disputed}) differs from contract state")
    if replayed.whitelist:
        print(f"  whitelist:  {', '.join(sorted(replayed.whitelist))}")


def events_command():
    job_id = _job_id("eacc events <id>")
    for i, event in enumerate(_client().get_events(job_id)):
        details = ", ".join(f"{k}={v}" for k, v in event.payload.items() if k != "terms")
        print(f"{i:>3} {event.timestamp} {event.type.name:<26} {event.actor or '-'} {details}")


def user_command():
    address = _arg(2, "eacc user <address>")
    client = _client()
    if not client.is_user_registered(address):
        print(f"{address} is not registered")
        sys.exit(1)
    user = client.get_user(address)
    rating = client.get_user_rating(address)
    print(f"{user.name} ({user.address})")
    if user.bio:
        print(f"  bio:        {user.bio}")
    print(f"  reputation: +{user.reputation_up} / -{user.reputation_down}")
    print(f"  rating:     {rating.average_rating / 10000:.2f} from {rating.number_of_reviews} reviews")


def sign_take_command():
    job_id = _job_id("eacc sign-take <id>")
    client = _client()
    signer = KeySigner()
    events_length = client.get_events_length(job_id)
    signature = signer.sign_take(job_id, events_length)
    job = client.job_state(job_id)
    # local check only; nothing is submitted
    lifecycle.validate(job, lifecycle.Action.TAKE, signer.address, signature=signature)
    print(f"signer:        {signer.address}")
    print(f"events length: {events_length}")
    print(f"signature:     {signature}")


def info_command():
    client = _client()
    print(f"chain:            {client.config.chain_id}")
    print(f"marketplace:      {client.config.marketplace_v2_address}")
    print(f"marketplace data: {client.config.marketplace_data_v1_address}")
    for key, value in client.get_marketplace_info().items():
        print(f"{key + ':':<18}{value}")


COMMANDS = {
    "job": job_command,
    "events": events_command,
    "user": user_command,
    "sign-take": sign_take_command,
    "info": info_command,
}


def main():
    """CLI entry point."""
    load_env()
    if len(sys.argv) < 2:
        print("EACC CLI")
        print("\nCommands:")
        print("  eacc job <id>        - On-chain job and its replayed state")
        print("  eacc events <id>     - Decoded event log of a job")
        print("  eacc user <address>  - User profile and rating")
        print("  eacc sign-take <id>  - Sign a take for the current events length")
        print("  eacc info            - Marketplace contract settings")
        print("\nSet EACC_RPC_URL / EACC_CHAIN_ID in .env to point at another node or network.")
        sys.exit(1)

    command = sys.argv[1]
    handler = COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        print(f"Use one of: {', '.join('eacc ' + name for name in COMMANDS)}")
        sys.exit(1)
    try:
        handler()
    except (EACCError, RuntimeError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
