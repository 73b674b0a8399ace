#!/usr/bin/env python3
import click
import logging
import sys
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import List

from dotenv import load_dotenv

from api.drafts import DraftStore
from api.errors import SessionExpired, ValidationError
from api.service import ends_within
from bidding.lifecycle import effective_status, utc_now
from bidding.models import AuctionStatus
from .client import AuctionCLIClient


def print_table(headers: List[str], rows: List[List[str]]):
    """Print rows as a box-drawn table, each column as wide as its widest cell."""
    col_widths = [
        max([len(header)] + [len(row[i]) for row in rows])
        for i, header in enumerate(headers)
    ]

    def build_separator(left, middle, right):
        return left + middle.join("─" * (w + 2) for w in col_widths) + right

    def build_row(values):
        return "│ " + " │ ".join(f"{values[i]:<{col_widths[i]}}" for i in range(len(values))) + " │"

    click.echo(build_separator("┌", "┬", "┐"))
    click.echo(build_row(headers))
    click.echo(build_separator("├", "┼", "┤"))
    for row in rows:
        click.echo(build_row(row))
    click.echo(build_separator("└", "┴", "┘"))


def fail(action: str, error: Exception):
    if isinstance(error, SessionExpired):
        click.echo(f"{error} Run 'auction login'.", err=True)
    else:
        click.echo(f"Failed to {action}: {error}", err=True)
    sys.exit(1)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose):
    """Timed auction marketplace CLI"""
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@cli.command()
@click.option("--email", prompt="Email")
@click.option("--password", prompt="Password", hide_input=True)
def login(email, password):
    """Log in and save the session."""
    try:
        client = AuctionCLIClient()
        identity = client.run(client.api.login(email, password))
        click.echo(f"Logged in as {identity.full_name} ({identity.role})")
    except Exception as e:
        fail("log in", e)


@cli.command()
@click.option("--email", prompt="Email")
@click.option("--full-name", prompt="Full name")
@click.option("--password", prompt="Password", hide_input=True, confirmation_prompt=True)
@click.option("--phone", default=None)
def register(email, full_name, password, phone):
    """Create an account and log in."""
    try:
        client = AuctionCLIClient()
        identity = client.run(client.api.register(email, password, full_name, phone))
        click.echo(f"Welcome, {identity.full_name}!")
    except Exception as e:
        fail("register", e)


@cli.command()
def logout():
    """Log out and forget the saved session."""
    try:
        client = AuctionCLIClient()
        client.run(client.api.logout())
        click.echo("Logged out.")
    except Exception as e:
        fail("log out", e)


@cli.command()
def whoami():
    """Show the logged-in user."""
    try:
        client = AuctionCLIClient()
        client.require_login()
        identity = client.run(client.api.get_profile())
        click.echo(f"{identity.full_name} <{identity.email}> - {identity.role}")
    except Exception as e:
        fail("load profile", e)


@cli.command("list")
@click.option("--status", type=click.Choice([s.value for s in AuctionStatus], case_sensitive=False), default=None)
@click.option("--category", default=None)
@click.option("--search", default=None)
@click.option("--page", type=int, default=None)
@click.option("--size", type=int, default=None)
def list_products(status, category, search, page, size):
    """List auctions. A '*' marks listings closing within the hour."""
    try:
        client = AuctionCLIClient()
        auctions = client.run(client.api.list_products(
            status=AuctionStatus(status.upper()) if status else None,
            category=category,
            search=search,
            page=page,
            size=size,
        ))
        if not auctions:
            click.echo("No auctions found.")
            return

        rows = []
        for auction in auctions:
            remaining = client.time_until_end(auction)
            if ends_within(auction, timedelta(hours=1)):
                remaining += " *"
            rows.append([
                auction.id,
                auction.title,
                f"${auction.current_price:.2f}",
                str(auction.bid_count),
                remaining,
            ])
        print_table(["ID", "Title", "Price", "Bids", "Ends In"], rows)
    except Exception as e:
        fail("list auctions", e)


@cli.command()
@click.argument("product_id")
def show(product_id):
    """Show an auction with its bids."""
    try:
        client = AuctionCLIClient()
        view = client.run(client.api.load_auction(product_id))
        auction = view.auction

        click.echo(f"{auction.title} [{view.status.value}]")
        if auction.description:
            click.echo(auction.description)
        click.echo(f"Starting price: ${auction.starting_price:.2f}")
        click.echo(f"Current price: ${auction.current_price:.2f}")
        click.echo(f"Ends at: {client.to_local_time(auction.end_time)} ({client.time_until_end(auction)})")
        if view.status == AuctionStatus.ACTIVE:
            click.echo(f"Minimum bid: ${view.minimum_bid:.2f}")

        if not len(view.ledger):
            click.echo("\nNo bids yet.")
            return
        click.echo(f"\n{len(view.ledger)} bid(s):")
        rows = [
            [bid.bidder_name, f"${bid.amount:.2f}", bid.status.value, client.to_local_time(bid.created_at)]
            for bid in view.ledger.ordered_for_display()
        ]
        print_table(["Bidder", "Amount", "Status", "Placed"], rows)
    except Exception as e:
        fail("load auction", e)


@cli.command()
@click.argument("product_id")
@click.argument("amount", type=str)
def bid(product_id, amount):
    """Place a bid on an auction."""
    try:
        client = AuctionCLIClient()
        client.require_login()
        placed = client.run(client.api.place_bid(product_id, amount))
        click.echo(f"Bid of ${placed.amount:.2f} placed (bid {placed.id}).")
    except ValidationError as e:
        click.echo(f"Bid not sent: {e.message}", err=True)
        sys.exit(1)
    except Exception as e:
        fail("place bid", e)


@cli.command("my-bids")
def my_bids():
    """List the auctions you have bid on."""
    try:
        client = AuctionCLIClient()
        client.require_login()
        items = client.run(client.api.get_my_bids())
        if not items:
            click.echo("You have not placed any bids.")
            return
        rows = [
            [
                item.product_title,
                f"${item.my_bid_amount:.2f}",
                f"${item.current_highest_bid:.2f}",
                item.bid_status.capitalize(),
                str(item.total_bids),
            ]
            for item in items
        ]
        print_table(["Item", "My Bid", "Highest", "Status", "Bids"], rows)
    except Exception as e:
        fail("load your bids", e)


@cli.command("my-listings")
def my_listings():
    """List the auctions you are selling."""
    try:
        client = AuctionCLIClient()
        client.require_login()
        auctions = client.run(client.api.list_my_listings())
        if not auctions:
            click.echo("You have no listings.")
            return
        rows = [
            [
                auction.id,
                auction.title,
                effective_status(auction).value,
                str(auction.bid_count),
                f"${auction.current_price:.2f}",
            ]
            for auction in auctions
        ]
        click.echo(f"{len(auctions)} {'listing' if len(auctions) == 1 else 'listings'}")
        print_table(["ID", "Title", "Status", "Bids", "Price"], rows)
    except Exception as e:
        fail("load your listings", e)


@cli.command()
@click.option("--title", prompt="Title")
@click.option("--description", prompt="Description", default="")
@click.option("--category", default=None)
@click.option("--starting-price", prompt="Starting price", type=str)
@click.option("--days", type=int, default=7, show_default=True, help="How long bidding stays open.")
@click.option("--image", "images", multiple=True, type=click.Path(exists=True, dir_okay=False))
def create(title, description, category, starting_price, days, images):
    """List a new item for auction."""
    try:
        price = Decimal(starting_price.replace("$", "").replace(",", ""))
    except InvalidOperation:
        click.echo(f"Invalid starting price: {starting_price}", err=True)
        sys.exit(1)

    drafts = DraftStore()
    try:
        client = AuctionCLIClient()
        client.require_login()
        draft = drafts.create(
            title=title,
            description=description,
            category=category,
            starting_price=price,
            end_time=utc_now() + timedelta(days=days),
            image_paths=list(images),
        )
        auction = client.run(client.api.publish_draft(drafts, draft.draft_id))
        click.echo(f"Listed '{auction.title}' as {auction.id}, ends {client.to_local_time(auction.end_time)}")
    except Exception as e:
        fail("create listing", e)


@cli.command()
@click.argument("product_id")
def cancel(product_id):
    """Cancel one of your open auctions."""
    try:
        client = AuctionCLIClient()
        client.require_login()
        auction = client.run(client.api.cancel_product(product_id))
        click.echo(f"Auction {auction.id} is now {AuctionStatus(auction.status).value}")
    except Exception as e:
        fail("cancel auction", e)


@cli.command()
@click.argument("product_id")
@click.confirmation_option(prompt="Delete this listing permanently?")
def delete(product_id):
    """Delete one of your listings."""
    try:
        client = AuctionCLIClient()
        client.require_login()
        client.run(client.api.delete_product(product_id))
        click.echo(f"Listing {product_id} deleted")
    except Exception as e:
        fail("delete listing", e)


if __name__ == "__main__":
    cli()
