import json
import logging

import click
import uvicorn
from sqlmodel import Session

from core.config import settings
from core.db import engine, init_db
from log import setup_logging_to_console, setup_logging_to_file
from services.rewards_distributor import LEAF_ENCODING
from utils.merkle_tree import StandardMerkleTree
from utils.web3_utils import to_address

logger = logging.getLogger(__name__)


@click.group()
@click.option("--log-file", is_flag=True, help="Also write logs to LOG_DIR")
def main(log_file: bool):
    setup_logging_to_console()
    if log_file:
        setup_logging_to_file("vault-cli")


@main.command()
@click.option("--host", default=settings.SERVER_HOST, help="Interface to bind")
@click.option("--port", default=settings.SERVER_PORT, type=int, help="Port to listen on")
def serve(host: str, port: int):
    """Run the HTTP API."""
    uvicorn.run("main:app", host=host, port=port)


@main.command("init-db")
def init_db_command():
    """Create the state tables."""
    with Session(engine) as session:
        init_db(session)
    logger.info("Created tables on %s", engine.url)


@main.command("merkle-tree")
@click.argument("claims_file", type=click.File("r"))
@click.option("--output", type=click.File("w"), default="-", help="Where to write the tree")
def merkle_tree(claims_file, output):
    """Build a rewards tree from a JSON list of [account, token, claimable_total] entries.

    Writes the root, a proof per entry and the tree dump in the standard-v1 format.
    """
    entries = json.load(claims_file)
    values = [(to_address(account), to_address(token), int(amount)) for account, token, amount in entries]
    tree = StandardMerkleTree.of(values, LEAF_ENCODING)
    result = {
        "root": tree.root,
        "claims": [
            {"account": value[0], "token": value[1], "claimable_total": str(value[2]), "proof": tree.get_proof(i)}
            for i, value in tree.entries()
        ],
        "tree": tree.dump(),
    }
    json.dump(result, output, indent=2)
    output.write("\n")
    logger.info("Built tree with %d leaves, root %s", len(tree), tree.root)


if __name__ == "__main__":
    main()
