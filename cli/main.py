import os
import re
import sys
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pathlib import Path
from typing import Optional, Dict, Any, List

import click
import requests
import yaml
from aws_requests_auth.aws_auth import AWSRequestsAuth
from dotenv import load_dotenv
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

load_dotenv()

console = Console()

PERIODS = ["7d", "30d", "90d", "1y"]
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def ringgit_to_cents(amount: str) -> int:
    """Convert a ringgit amount typed by the user ("12.50", "RM 12.50") to cents.

    Raises:
        click.BadParameter: If the amount is not a positive number
    """
    cleaned = amount.strip().upper().replace("RM", "").replace(",", "").strip()
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        raise click.BadParameter(f"Invalid amount: {amount}")

    if not value.is_finite() or value <= 0:
        raise click.BadParameter(f"Invalid amount: {amount}")

    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_date(value: Optional[str], label: str = "date") -> Optional[str]:
    """Check a YYYY-MM-DD date, exiting with a message when malformed."""
    if value is None:
        return None
    try:
        if not ISO_DATE.match(value):
            raise ValueError(value)
        return date.fromisoformat(value).isoformat()
    except ValueError:
        console.print(f"[red]Invalid {label} format. Use YYYY-MM-DD[/red]")
        sys.exit(1)


def load_seed_yaml(seed_file: Optional[str] = None) -> List[Dict[str, Any]]:
    """Load demo expenses from a YAML file.

    Args:
        seed_file: Optional path to custom seed file. If None, uses demo_expenses.yaml

    Returns:
        List of expense payloads ready for the bulk endpoint

    Raises:
        FileNotFoundError: If seed file doesn't exist
        yaml.YAMLError: If YAML file is malformed
        ValueError: If the file has no expenses list
    """
    if seed_file:
        yaml_path = Path(seed_file)
    else:
        yaml_path = Path(__file__).parent / "demo_expenses.yaml"

    if not yaml_path.exists():
        raise FileNotFoundError(
            f"Seed file not found: {yaml_path}\n"
            f"Please ensure demo_expenses.yaml exists or specify a custom file with --seed-file"
        )

    try:
        with open(yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        console.print(f"[red]Error parsing YAML file: {e}[/red]")
        raise

    expenses = data.get("expenses")
    if not isinstance(expenses, list) or not expenses:
        raise ValueError("Seed file must contain a non-empty 'expenses' list")

    today = date.today().isoformat()
    for expense in expenses:
        # Demo data is dated today unless the file says otherwise
        expense.setdefault("date", today)
        if isinstance(expense["date"], date):
            expense["date"] = expense["date"].isoformat()

    return expenses


class MoneyMindClient:
    def __init__(self):
        self.api_endpoint = os.getenv("API_ENDPOINT")
        self.aws_access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
        self.aws_secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY")
        self.aws_region = os.getenv("AWS_REGION", "ap-southeast-1")
        self.user_id = os.getenv("MONEYMIND_USER_ID")

        # Check if running in local development mode
        self.is_local = self._is_local_development()

        if self.is_local:
            console.print("[yellow]Running in local development mode[/yellow]")
            self.auth = None
        else:
            if not all(
                [self.api_endpoint, self.aws_access_key_id, self.aws_secret_access_key]
            ):
                console.print(
                    "[red]Error: Missing required environment variables[/red]"
                )
                console.print(
                    "Required: API_ENDPOINT, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY"
                )
                sys.exit(1)

            self.auth = AWSRequestsAuth(
                aws_access_key=self.aws_access_key_id,
                aws_secret_access_key=self.aws_secret_access_key,
                aws_token=os.getenv("AWS_SESSION_TOKEN"),
                aws_host=self.api_endpoint.replace("https://", "")
                .replace("http://", "")
                .rstrip("/"),
                aws_region=self.aws_region,
                aws_service="execute-api",
            )

    def _is_local_development(self) -> bool:
        """Detect if running in local development mode."""
        if not self.api_endpoint:
            return False
        return (
            self.api_endpoint.startswith("http://localhost")
            or self.api_endpoint.startswith("http://127.0.0.1")
            or os.getenv("ENVIRONMENT") == "local"
        )

    def make_request(
        self, method: str, path: str, quiet: bool = False, **kwargs
    ) -> Optional[dict]:
        """Make a request to the API and return its JSON envelope.

        Args:
            method: HTTP method
            path: API path under /api
            quiet: If True, suppress error messages (for expected failures)
            **kwargs: Additional arguments for requests
        """
        url = f"{self.api_endpoint.rstrip('/')}/api{path}"

        if self.user_id:
            params = dict(kwargs.pop("params", None) or {})
            params.setdefault("user_id", self.user_id)
            kwargs["params"] = params

        try:
            response = requests.request(method, url, auth=self.auth, **kwargs)
            response.raise_for_status()

            if response.headers.get("content-type", "").startswith("application/json"):
                return response.json()
            return {"message": response.text}

        except requests.exceptions.HTTPError as e:
            if not quiet:
                console.print(
                    f"[red]HTTP Error {e.response.status_code}: {_error_message(e.response)}[/red]"
                )
            return None
        except requests.exceptions.RequestException as e:
            if not quiet:
                console.print(f"[red]Error: {str(e)}[/red]")
            return None

    def health_check(self) -> bool:
        """Check API health status."""
        console.print(f"Checking API health status at {self.api_endpoint}...")
        result = self.make_request("GET", "/health")
        if result:
            table = Table(title="API Health Check")
            table.add_column("Field", style="cyan")
            table.add_column("Value", style="magenta")

            table.add_row("Status", result.get("status", "unknown"))
            table.add_row("Timestamp", result.get("timestamp", "unknown"))
            table.add_row("Version", result.get("version", "unknown"))
            table.add_row("Environment", result.get("environment") or "unknown")

            console.print(table)
            return result.get("status") == "healthy"
        return False


def _error_message(response: requests.Response) -> str:
    try:
        return response.json().get("error") or response.text
    except ValueError:
        return response.text


def resolve_expense_date(client: MoneyMindClient, expense_id: str) -> Optional[str]:
    """Find the date of an expense by paging through the user's expenses.

    The API locates an expense by id and date, so commands that are not given
    --date look the expense up first. Returns None when it is not found.
    """
    params: Dict[str, Any] = {"limit": 100}

    while True:
        result = client.make_request("GET", "/expenses", params=params, quiet=True)
        if not result:
            return None

        data = result["data"]
        for expense in data["expenses"]:
            if expense["id"] == expense_id:
                return expense["date"]

        pagination = data["pagination"]
        if not pagination.get("has_more"):
            return None
        params["last_evaluated_key"] = pagination["last_evaluated_key"]


def _expense_date_or_exit(
    client: MoneyMindClient, expense_id: str, expense_date: Optional[str]
) -> str:
    if expense_date:
        return validate_date(expense_date)

    found = resolve_expense_date(client, expense_id)
    if not found:
        console.print(f"[red]✗ Expense '{expense_id}' not found[/red]")
        sys.exit(1)
    return found


def print_expenses_table(title: str, expenses: List[Dict[str, Any]]) -> None:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Date", style="yellow")
    table.add_column("Description", style="white", max_width=30)
    table.add_column("Amount", style="green", justify="right")
    table.add_column("Category", style="magenta")
    table.add_column("Merchant", style="blue")

    for expense in expenses:
        description = (
            expense["description"][:27] + "..."
            if len(expense["description"]) > 30
            else expense["description"]
        )
        table.add_row(
            expense["id"],
            expense["date"],
            description,
            expense["amount_myr"],
            expense["category"],
            expense.get("merchant") or "-",
        )

    console.print(table)


def print_bulk_summary(data: Dict[str, Any]) -> None:
    summary = data["summary"]
    console.print(
        f"[green]✓ Created {summary['successful']} of {summary['total_processed']} "
        f"expenses ({summary['total_amount_myr']})[/green]"
    )

    if data.get("failed"):
        console.print("\n[red]Failed expenses:[/red]")
        for failure in data["failed"]:
            console.print(f"  • {failure['expense']['description']}: {failure['error']}")


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """MoneyMind CLI - Expense tracking for Malaysian spenders."""
    pass


@cli.command()
def health():
    """Check API health status."""
    client = MoneyMindClient()
    if client.health_check():
        console.print("[green]✓ API is healthy[/green]")
    else:
        console.print("[red]✗ API health check failed[/red]")
        sys.exit(1)


@cli.command()
def test():
    """Test authenticated API connection."""
    client = MoneyMindClient()
    result = client.make_request("GET", "/")

    if result:
        console.print("[green]✓ Authentication successful[/green]")
        console.print(f"Message: {result.get('message', 'No message')}")
        console.print(f"Version: {result.get('version', 'Unknown')}")
    else:
        console.print("[red]✗ Authentication failed[/red]")
        sys.exit(1)


# Expense Commands
@cli.group()
def expenses():
    """Expense management commands."""
    pass


@expenses.command("create")
@click.option("--description", required=True, help="Expense description")
@click.option("--amount", required=True, help="Amount in ringgit, e.g. 12.50")
@click.option("--date", "expense_date", help="Expense date (YYYY-MM-DD), defaults to today")
@click.option("--category", help="Category, e.g. food_mamak (auto-detected if omitted)")
@click.option("--merchant", help="Merchant name")
@click.option("--location", help="Location")
@click.option("--payment-method", help="Payment method, e.g. touch_n_go")
@click.option("--notes", help="Notes")
def create_expense(
    description: str,
    amount: str,
    expense_date: Optional[str],
    category: Optional[str],
    merchant: Optional[str],
    location: Optional[str],
    payment_method: Optional[str],
    notes: Optional[str],
):
    """Create a new expense."""
    client = MoneyMindClient()

    expense_data: Dict[str, Any] = {
        "description": description,
        "amount": ringgit_to_cents(amount),
    }

    optional = {
        "date": validate_date(expense_date),
        "category": category,
        "merchant": merchant,
        "location": location,
        "payment_method": payment_method,
        "notes": notes,
    }
    expense_data.update({key: value for key, value in optional.items() if value})

    result = client.make_request("POST", "/expenses", json=expense_data)
    if result:
        expense = result["data"]["expense"]
        console.print(f"[green]✓ Created expense: {expense['id']}[/green]")
        console.print(f"Description: {expense['description']}")
        console.print(f"Amount: {expense['amount_myr']}")
        console.print(f"Date: {expense['date']}")
        console.print(
            f"Category: {expense['category']} (confidence {expense.get('confidence')}%)"
        )
    else:
        console.print("[red]✗ Failed to create expense[/red]")
        sys.exit(1)


@expenses.command("list")
@click.option("--start-date", help="Start date (YYYY-MM-DD)")
@click.option("--end-date", help="End date (YYYY-MM-DD)")
@click.option("--category", help="Category, e.g. transport_grab")
@click.option("--limit", type=int, default=20, help="Page size")
@click.option("--next-key", help="last_evaluated_key from a previous page")
def list_expenses(
    start_date: Optional[str],
    end_date: Optional[str],
    category: Optional[str],
    limit: int,
    next_key: Optional[str],
):
    """List expenses, newest first."""
    client = MoneyMindClient()

    params: Dict[str, Any] = {"limit": limit}
    if start_date:
        params["start_date"] = validate_date(start_date, "start date")
    if end_date:
        params["end_date"] = validate_date(end_date, "end date")
    if category:
        params["category"] = category
    if next_key:
        params["last_evaluated_key"] = next_key

    result = client.make_request("GET", "/expenses", params=params)
    if result is None:
        console.print("[red]✗ Failed to retrieve expenses[/red]")
        sys.exit(1)

    data = result["data"]
    if not data["expenses"]:
        console.print("No expenses found")
        return

    print_expenses_table(f"Expenses ({data['pagination']['count']} shown)", data["expenses"])

    if data["pagination"]["has_more"]:
        console.print(
            f"[yellow]More expenses available. Use --next-key "
            f"'{data['pagination']['last_evaluated_key']}'[/yellow]"
        )


@expenses.command("get")
@click.argument("expense_id")
@click.option("--date", "expense_date", help="Expense date (YYYY-MM-DD); looked up if omitted")
def get_expense(expense_id: str, expense_date: Optional[str]):
    """Show detailed information for a specific expense."""
    client = MoneyMindClient()
    expense_date = _expense_date_or_exit(client, expense_id, expense_date)

    result = client.make_request(
        "GET", f"/expenses/{expense_id}", params={"date": expense_date}
    )
    if not result:
        console.print("[red]✗ Failed to retrieve expense details[/red]")
        sys.exit(1)

    expense = result["data"]["expense"]
    table = Table(title=f"Expense Details: {expense['id']}")
    table.add_column("Field", style="cyan", min_width=20)
    table.add_column("Value", style="white", min_width=30)

    table.add_row("Date", expense["date"])
    table.add_row("Description", expense["description"])
    table.add_row("Amount", expense["amount_myr"])
    table.add_row("Category", expense["category"])
    table.add_row("Confidence", f"{expense.get('confidence')}%")
    table.add_row("Merchant", expense.get("merchant") or "None")
    table.add_row("Location", expense.get("location") or "None")
    table.add_row("Payment Method", expense.get("payment_method") or "None")
    table.add_row("Notes", expense.get("notes") or "None")
    table.add_row("Created At", expense["created_at"])

    console.print(table)


@expenses.command("update")
@click.argument("expense_id")
@click.option("--date", "expense_date", help="Expense date (YYYY-MM-DD); looked up if omitted")
@click.option("--description", help="New description")
@click.option("--amount", help="New amount in ringgit")
@click.option("--category", help="New category")
@click.option("--merchant", help="New merchant")
@click.option("--notes", help="New notes")
def update_expense(
    expense_id: str,
    expense_date: Optional[str],
    description: Optional[str],
    amount: Optional[str],
    category: Optional[str],
    merchant: Optional[str],
    notes: Optional[str],
):
    """Update fields of an expense (its date cannot change)."""
    update_data: Dict[str, Any] = {
        key: value
        for key, value in {
            "description": description,
            "category": category,
            "merchant": merchant,
            "notes": notes,
        }.items()
        if value
    }
    if amount:
        update_data["amount"] = ringgit_to_cents(amount)

    if not update_data:
        console.print("[red]Nothing to update. Pass at least one field option.[/red]")
        sys.exit(1)

    client = MoneyMindClient()
    expense_date = _expense_date_or_exit(client, expense_id, expense_date)

    result = client.make_request(
        "PUT",
        f"/expenses/{expense_id}",
        params={"date": expense_date},
        json=update_data,
    )
    if result:
        expense = result["data"]["expense"]
        console.print(f"[green]✓ Updated expense: {expense['id']}[/green]")
        console.print(f"Amount: {expense['amount_myr']}  Category: {expense['category']}")
    else:
        console.print("[red]✗ Failed to update expense[/red]")
        sys.exit(1)


@expenses.command("delete")
@click.argument("expense_id")
@click.option("--date", "expense_date", help="Expense date (YYYY-MM-DD); looked up if omitted")
@click.option("--yes", is_flag=True, help="Skip confirmation")
def delete_expense(expense_id: str, expense_date: Optional[str], yes: bool):
    """Delete an expense."""
    client = MoneyMindClient()
    expense_date = _expense_date_or_exit(client, expense_id, expense_date)

    if not yes and not Confirm.ask(
        f"Are you sure you want to delete expense '{expense_id}'?"
    ):
        console.print("Operation cancelled")
        return

    result = client.make_request(
        "DELETE", f"/expenses/{expense_id}", params={"date": expense_date}
    )
    if result:
        console.print(f"[green]✓ Deleted expense: {expense_id}[/green]")
    else:
        console.print("[red]✗ Failed to delete expense[/red]")
        sys.exit(1)


@expenses.command("search")
@click.argument("term")
@click.option("--limit", type=int, default=20, help="Maximum results")
def search_expenses(term: str, limit: int):
    """Search expenses by description."""
    if len(term.strip()) < 2:
        console.print("[red]Search term must be at least 2 characters[/red]")
        sys.exit(1)

    client = MoneyMindClient()
    result = client.make_request(
        "GET", "/expenses/search", params={"q": term, "limit": limit}
    )
    if result is None:
        console.print("[red]✗ Search failed[/red]")
        sys.exit(1)

    data = result["data"]
    if not data["expenses"]:
        console.print(f"No expenses matching '{term}'")
        return

    print_expenses_table(f"Search results for '{term}' ({data['count']})", data["expenses"])


@expenses.command("recent")
@click.option("--limit", type=int, default=5, help="Number of expenses")
def recent_expenses(limit: int):
    """Show the most recent expenses."""
    client = MoneyMindClient()
    result = client.make_request("GET", "/expenses/recent", params={"limit": limit})
    if result is None:
        console.print("[red]✗ Failed to retrieve recent expenses[/red]")
        sys.exit(1)

    recent = result["data"]["expenses"]
    if not recent:
        console.print("No expenses found")
        return

    print_expenses_table("Recent Expenses", recent)


@expenses.command("upload")
@click.argument("file_path", type=click.Path(exists=True))
def upload_csv(file_path: str):
    """Upload a CSV file (date, description, amount, merchant, category)."""
    client = MoneyMindClient()

    console.print(f"Uploading CSV file: {file_path}")

    with open(file_path, "rb") as f:
        files = {"file": (os.path.basename(file_path), f, "text/csv")}
        result = client.make_request("POST", "/expenses/csv", files=files)

    if not result:
        console.print("[red]✗ Failed to upload CSV file[/red]")
        sys.exit(1)

    data = result["data"]
    print_bulk_summary(data)

    processing = data.get("csv_processing") or {}
    console.print(
        f"Rows read: {processing.get('total_rows', 0)}, "
        f"valid expenses: {processing.get('valid_expenses', 0)}"
    )
    if processing.get("parse_errors"):
        console.print("\n[yellow]Rows skipped:[/yellow]")
        for error in processing["parse_errors"]:
            console.print(f"  • {error}")


@expenses.command("seed-demo")
@click.option(
    "--seed-file",
    type=click.Path(exists=True),
    help="Path to custom seed YAML file (default: cli/demo_expenses.yaml)",
)
def seed_demo(seed_file: Optional[str] = None):
    """Create demo Malaysian expenses through the bulk endpoint.

    Examples:
        moneymind expenses seed-demo
        moneymind expenses seed-demo --seed-file=custom.yaml
    """
    try:
        demo_expenses = load_seed_yaml(seed_file)
    except (FileNotFoundError, yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Error loading seed data: {e}[/red]")
        sys.exit(1)

    console.print(f"[bold blue]Seeding {len(demo_expenses)} demo expenses...[/bold blue]")

    client = MoneyMindClient()
    result = client.make_request(
        "POST", "/expenses/bulk", json={"expenses": demo_expenses}
    )
    if not result:
        console.print("[red]✗ Failed to seed demo expenses[/red]")
        sys.exit(1)

    print_bulk_summary(result["data"])


# Analytics Commands
@cli.group()
def analytics():
    """Spending analytics commands."""
    pass


@analytics.command("show")
@click.option(
    "--period",
    type=click.Choice(PERIODS),
    default="30d",
    show_default=True,
    help="Analytics period",
)
def show_analytics(period: str):
    """Show the spending dashboard for a period."""
    client = MoneyMindClient()
    result = client.make_request("GET", "/analytics", params={"period": period})
    if not result:
        console.print("[red]✗ Failed to retrieve analytics[/red]")
        sys.exit(1)

    data = result["data"]
    stats = data["analytics"]
    date_range = data["date_range"]

    overview = Table(
        title=f"Spending {date_range['start_date']} to {date_range['end_date']} ({period})"
    )
    overview.add_column("Metric", style="cyan")
    overview.add_column("Value", style="green", justify="right")
    overview.add_row("Total Spent", stats["total_spent_myr"])
    overview.add_row("Transactions", str(stats["transaction_count"]))
    overview.add_row("Daily Average", stats["daily_average_myr"])
    overview.add_row("Budget Remaining", stats["budget_remaining_myr"])
    overview.add_row("Budget Used", f"{stats['budget_usage_percentage']}%")
    console.print(overview)

    if stats["category_breakdown"]:
        categories = Table(title="By Category")
        categories.add_column("Category", style="magenta")
        categories.add_column("Total", style="green", justify="right")
        categories.add_column("Count", justify="right")
        categories.add_column("Share", justify="right")
        for category in stats["category_breakdown"]:
            categories.add_row(
                category["name"],
                category["total_myr"],
                str(category["count"]),
                f"{category['percentage']}%",
            )
        console.print(categories)

    if stats["top_merchants"]:
        merchants = Table(title="Top Merchants")
        merchants.add_column("Merchant", style="blue")
        merchants.add_column("Total", style="green", justify="right")
        for merchant in stats["top_merchants"]:
            merchants.add_row(merchant["merchant"], merchant["total_myr"])
        console.print(merchants)

    console.print("\n[bold]Insights:[/bold]")
    for insight in stats["smart_insights"]:
        console.print(f"  • {insight}")


if __name__ == "__main__":
    cli()
