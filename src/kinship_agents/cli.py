"""CLI interface for Kinship Agents."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .backends.base import create_backend
from .exceptions import KinshipError
from .models.chat import Role

app = typer.Typer(
    name="kinship-agents",
    help="Family tree records with a tool-calling genealogy assistant",
    add_completion=False,
)
console = Console()

DEFAULT_DB_PATH = Path("./data/kinship.db")

DB_OPTION = typer.Option(None, "--db", help="SQLite database file (default: KINSHIP_DB_PATH or ./data/kinship.db)")
DEMO_OPTION = typer.Option(False, "--demo", help="Use a throwaway in-memory tree seeded with a demo family")
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Settings JSON file")


def get_settings(config_path: Path | None = None):
    """Load settings from .env, an optional JSON file and the environment."""
    from dotenv import load_dotenv

    from .config import load_settings
    from .logging import configure_logging

    load_dotenv()
    try:
        settings = load_settings(config_path)
    except KinshipError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    configure_logging(settings.log_level, settings.log_format)
    return settings


async def open_tree(settings, db: Path | None, demo: bool):
    """Open the store named on the command line, seeding it for --demo."""
    from .store import open_store, seed_demo_data

    if demo:
        store = open_store(None)
        await seed_demo_data(store)
        return store
    return open_store(db or settings.db_path or DEFAULT_DB_PATH)


def _assistant(settings, name: str):
    try:
        return settings.assistant(name)
    except KinshipError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _run(coro):
    """Run a coroutine, turning library errors into a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except KinshipError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _fmt_date(value) -> str:
    return value.isoformat() if value else ""


def _parse_assignments(assignments: list[str]) -> dict[str, str | None]:
    """Turn ``field=value`` options into update fields; an empty value clears."""
    fields: dict[str, str | None] = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key.strip():
            console.print(f"[red]Expected field=value, got: {escape(assignment)}[/red]")
            raise typer.Exit(1)
        fields[key.strip()] = value if value != "" else None
    return fields


# =============================================================================
# Records
# =============================================================================


@app.command()
def people(
    db: Path = DB_OPTION,
    demo: bool = DEMO_OPTION,
    config: Path = CONFIG_OPTION,
):
    """List everyone in the family tree."""
    settings = get_settings(config)

    async def run():
        store = await open_tree(settings, db, demo)
        return await store.list_people()

    everyone = _run(run())
    if not everyone:
        console.print("[yellow]The family tree is empty.[/yellow]")
        return

    names = {p.id: p.full_name for p in everyone}
    table = Table(title="People")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Gender")
    table.add_column("Born")
    table.add_column("Died")
    table.add_column("Mother")
    table.add_column("Father")
    table.add_column("Home")

    for person in everyone:
        table.add_row(
            person.id,
            person.full_name,
            person.gender.value if person.gender else "",
            _fmt_date(person.birth_date),
            _fmt_date(person.death_date),
            names.get(person.mother_id, person.mother_id or ""),
            names.get(person.father_id, person.father_id or ""),
            "yes" if person.is_home_person else "",
        )

    console.print(table)
    console.print(f"[dim]{len(everyone)} people[/dim]")


@app.command()
def marriages(
    db: Path = DB_OPTION,
    demo: bool = DEMO_OPTION,
    config: Path = CONFIG_OPTION,
):
    """List marriages."""
    settings = get_settings(config)

    async def run():
        store = await open_tree(settings, db, demo)
        return await store.list_people(), await store.list_marriages()

    everyone, unions = _run(run())
    if not unions:
        console.print("[yellow]No marriages recorded.[/yellow]")
        return

    names = {p.id: p.full_name for p in everyone}
    table = Table(title="Marriages")
    table.add_column("ID", style="dim")
    table.add_column("Spouse 1")
    table.add_column("Spouse 2")
    table.add_column("Married")
    table.add_column("Place")
    table.add_column("Divorced")

    for m in unions:
        table.add_row(
            m.id,
            names.get(m.spouse1_id, m.spouse1_id),
            names.get(m.spouse2_id, m.spouse2_id),
            _fmt_date(m.marriage_date),
            m.marriage_place or "",
            _fmt_date(m.divorce_date),
        )

    console.print(table)


@app.command()
def relations(
    home: str = typer.Option(None, "--home", help="Person ID to use instead of the home person"),
    db: Path = DB_OPTION,
    demo: bool = DEMO_OPTION,
    config: Path = CONFIG_OPTION,
):
    """Show ancestry, descendants, lateral relatives and lineage traces."""
    settings = get_settings(config)

    from .relations import find_home_person

    async def run():
        store = await open_tree(settings, db, demo)
        everyone = await store.list_people()
        home_id = home
        if home_id is None:
            # No flag set: fall back to the first person, as the dashboard does
            fallback = find_home_person(everyone)
            home_id = fallback.id if fallback else None
        return everyone, await store.list_marriages(), await store.get_relations(home_id)

    everyone, unions, data = _run(run())
    if data.is_empty:
        console.print("[yellow]No home person set. Add someone or run set-home first.[/yellow]")
        return

    names = {p.id: p.full_name for p in everyone}
    home_name = names.get(data.home_person_id, data.home_person_id)
    summary = Table(title=f"Home Person: {escape(home_name)}")
    for column in ("Ancestors", "Descendants", "Total People", "DNA Matches"):
        summary.add_column(column, justify="right")
    summary.add_row(
        str(data.ancestor_count),
        str(len(data.descendants)),
        str(len(everyone)),
        str(sum(1 for p in everyone if p.dna_match)),
    )
    console.print(summary)

    spouses = []
    for m in unions:
        spouse_id = m.spouse_of(data.home_person_id)
        if spouse_id is not None:
            spouses.append((m, spouse_id))
    if spouses:
        table = Table(title="Marriages")
        for column in ("Spouse", "Married", "Place", "Divorced"):
            table.add_column(column)
        for m, spouse_id in spouses:
            table.add_row(
                names.get(spouse_id, "Unknown"),
                _fmt_date(m.marriage_date),
                m.marriage_place or "",
                _fmt_date(m.divorce_date),
            )
        console.print(table)

    ancestry = Table(title="Ancestry")
    for column in ("Gen", "Relation", "Side", "Name", "ID"):
        ancestry.add_column(column)
    for entry in data.ancestry:
        ancestry.add_row(
            str(entry.generation), entry.relation, entry.side.value,
            entry.full_name, entry.person_id,
        )
    console.print(ancestry)

    _print_relatives("Descendants", data.descendants)
    _print_relatives("Lateral Relatives", data.lateral)

    for title, rows, field in (
        ("Paternal Haplogroup", data.paternal_haplogroup, "paternal_haplogroup"),
        ("Maternal Haplogroup", data.maternal_haplogroup, "maternal_haplogroup"),
    ):
        if rows:
            table = Table(title=title)
            for column in ("Relation", "Name", "Haplogroup"):
                table.add_column(column)
            for row in rows:
                table.add_row(row.relation, row.full_name, getattr(row, field))
            console.print(table)

    for title, rows in (
        ("Paternal Enslaved Ancestors", data.paternal_enslaved),
        ("Maternal Enslaved Ancestors", data.maternal_enslaved),
    ):
        if rows:
            table = Table(title=title)
            for column in ("Gen", "Relation", "Name"):
                table.add_column(column)
            for row in rows:
                table.add_row(str(row.generation), row.relation, row.full_name)
            console.print(table)


def _print_relatives(title: str, rows) -> None:
    if not rows:
        console.print(f"[dim]No {title.lower()}.[/dim]")
        return
    table = Table(title=title)
    for column in ("Gen", "Relation", "Side", "Name", "ID"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            str(row.generation), row.relation, row.side.value,
            row.full_name, row.person_id,
        )
    console.print(table)


@app.command("add-person")
def add_person(
    first_name: str = typer.Argument(..., help="First name"),
    last_name: str = typer.Argument(..., help="Last name"),
    gender: str = typer.Option(None, "--gender", "-g", help="Male, Female, Other or Unknown"),
    birth_date: str = typer.Option(None, "--birth-date", help="YYYY-MM-DD"),
    death_date: str = typer.Option(None, "--death-date", help="YYYY-MM-DD"),
    mother_id: str = typer.Option(None, "--mother", help="Mother's person ID"),
    father_id: str = typer.Option(None, "--father", help="Father's person ID"),
    make_home: bool = typer.Option(False, "--home", help="Make this person the home person"),
    db: Path = DB_OPTION,
    config: Path = CONFIG_OPTION,
):
    """Add a person. The first person added becomes the home person."""
    from .tools.dispatcher import PERSON_DEFAULTS

    settings = get_settings(config)
    fields = {
        "first_name": first_name,
        "last_name": last_name,
        "gender": gender,
        "birth_date": birth_date,
        "death_date": death_date,
        "mother_id": mother_id,
        "father_id": father_id,
    }
    fields = {**PERSON_DEFAULTS, **{k: v for k, v in fields.items() if v is not None}}

    async def run():
        store = await open_tree(settings, db, False)
        fields["is_home_person"] = make_home or await store.count_people() == 0
        return await store.insert_person(fields)

    person = _run(run())
    suffix = " as the home person" if person.is_home_person else ""
    console.print(f"[green]Added {person.full_name} ({person.id}){suffix}[/green]")


@app.command("update-person")
def update_person(
    person_id: str = typer.Argument(..., help="Person ID"),
    assignments: list[str] = typer.Option(
        ..., "--set", "-s", help="field=value; an empty value clears the field"
    ),
    db: Path = DB_OPTION,
    config: Path = CONFIG_OPTION,
):
    """Update fields on a person."""
    settings = get_settings(config)
    fields = _parse_assignments(assignments)

    async def run():
        store = await open_tree(settings, db, False)
        return await store.update_person(person_id, fields)

    person = _run(run())
    console.print(f"[green]Updated {person.full_name}: {', '.join(sorted(fields))}[/green]")


@app.command("set-home")
def set_home(
    person_id: str = typer.Argument(..., help="Person ID"),
    db: Path = DB_OPTION,
    config: Path = CONFIG_OPTION,
):
    """Make a person the home person, unsetting everyone else."""
    settings = get_settings(config)

    async def run():
        store = await open_tree(settings, db, False)
        return await store.update_person(person_id, {"is_home_person": True})

    person = _run(run())
    console.print(f"[green]{person.full_name} is now the home person[/green]")


@app.command("add-marriage")
def add_marriage(
    spouse1_id: str = typer.Argument(..., help="First spouse's person ID"),
    spouse2_id: str = typer.Argument(..., help="Second spouse's person ID"),
    marriage_date: str = typer.Option(None, "--date", help="YYYY-MM-DD"),
    marriage_place: str = typer.Option(None, "--place", help="Where the marriage took place"),
    db: Path = DB_OPTION,
    config: Path = CONFIG_OPTION,
):
    """Record a marriage between two people."""
    settings = get_settings(config)
    fields = {"spouse1_id": spouse1_id, "spouse2_id": spouse2_id}
    if marriage_date:
        fields["marriage_date"] = marriage_date
    if marriage_place:
        fields["marriage_place"] = marriage_place

    async def run():
        store = await open_tree(settings, db, False)
        return await store.insert_marriage(fields)

    marriage = _run(run())
    console.print(f"[green]Recorded marriage {marriage.id}[/green]")


@app.command("update-marriage")
def update_marriage(
    marriage_id: str = typer.Argument(..., help="Marriage ID"),
    assignments: list[str] = typer.Option(
        ..., "--set", "-s", help="field=value; an empty value clears the field"
    ),
    db: Path = DB_OPTION,
    config: Path = CONFIG_OPTION,
):
    """Edit a marriage: dates, places, notes or spouses."""
    settings = get_settings(config)
    fields = _parse_assignments(assignments)

    async def run():
        store = await open_tree(settings, db, False)
        return await store.update_marriage(marriage_id, fields)

    marriage = _run(run())
    console.print(f"[green]Updated marriage {marriage.id}: {', '.join(sorted(fields))}[/green]")


@app.command("delete-marriage")
def delete_marriage(
    marriage_id: str = typer.Argument(..., help="Marriage ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    db: Path = DB_OPTION,
    config: Path = CONFIG_OPTION,
):
    """Delete a marriage record. Both people are kept."""
    settings = get_settings(config)
    if not yes:
        typer.confirm(f"Delete marriage {marriage_id}?", abort=True)

    async def run():
        store = await open_tree(settings, db, False)
        await store.delete_marriage(marriage_id)

    _run(run())
    console.print(f"[green]Deleted marriage {marriage_id}[/green]")


@app.command("delete-person")
def delete_person(
    person_id: str = typer.Argument(..., help="Person ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    db: Path = DB_OPTION,
    config: Path = CONFIG_OPTION,
):
    """Delete a person, their parent links and their marriages."""
    settings = get_settings(config)
    if not yes:
        typer.confirm(f"Delete {person_id} and their marriages?", abort=True)

    async def run():
        store = await open_tree(settings, db, False)
        await store.delete_person(person_id)

    _run(run())
    console.print(f"[green]Deleted {person_id}[/green]")


# =============================================================================
# Assistant
# =============================================================================


@app.command()
def chat(
    assistant: str = typer.Option("assistant", "--assistant", "-a", help="Named AI configuration"),
    db: Path = DB_OPTION,
    demo: bool = DEMO_OPTION,
    config: Path = CONFIG_OPTION,
):
    """Talk to the genealogy assistant.

    Type /good or /bad [comment] to rate the last answer, exit to quit.
    """
    from .chat import ChatOrchestrator

    settings = get_settings(config)
    ai = _assistant(settings, assistant)

    if not ai.is_configured:
        console.print(f"[yellow]Warning: {ai.provider} is not fully configured.[/yellow]")
    console.print(Panel(f"[bold]Model:[/bold] {ai.model_label}", title="Genealogy Assistant"))

    async def refresh():
        console.print("[dim]Family tree updated.[/dim]")

    async def run():
        store = await open_tree(settings, db, demo)
        orchestrator = ChatOrchestrator(store, ai, backend=create_backend(ai), refresh=refresh)
        last_answer = None

        while True:
            try:
                text = console.input("[bold cyan]You[/bold cyan]: ")
            except EOFError:
                break
            command = text.strip()
            if command.lower() in ("exit", "quit"):
                break
            if command.startswith(("/good", "/bad")):
                if last_answer is None:
                    console.print("[yellow]Nothing to rate yet.[/yellow]")
                    continue
                word, _, comment = command.partition(" ")
                rating = 1 if word == "/good" else -1
                entry = await orchestrator.feedback(last_answer, rating, comment.strip())
                console.print("[dim]Thanks for the feedback.[/dim]" if entry else "[red]Feedback was not saved.[/red]")
                continue

            for message in await orchestrator.submit(text):
                if message.role == Role.TOOL:
                    console.print(f"[dim]{message.tool_name}: {escape(message.content)}[/dim]")
                elif message.is_tool_request:
                    calls = ", ".join(call.name for call in message.tool_calls)
                    console.print(f"[dim]Using tools: {calls}[/dim]")
                elif message.role == Role.MODEL:
                    console.print(f"[bold green]Assistant[/bold green]: {escape(message.content)}")
                    last_answer = message.id

    _run(run())


@app.command("ollama-models")
def ollama_models(
    base_url: str = typer.Option(None, "--base-url", help="Ollama base URL (e.g. http://localhost:11434)"),
    assistant: str = typer.Option("assistant", "--assistant", "-a", help="Named AI configuration"),
    config: Path = CONFIG_OPTION,
):
    """List models installed on the Ollama server."""
    from .backends.ollama import OllamaBackend

    settings = get_settings(config)
    ai = _assistant(settings, assistant)
    if base_url:
        ai = ai.model_copy(update={"base_url": base_url})

    models = _run(OllamaBackend().list_models(ai))
    if not models:
        console.print("[yellow]No models installed.[/yellow]")
        return

    table = Table(title=f"Ollama Models ({ai.base_url})")
    table.add_column("Name")
    table.add_column("Size")
    table.add_column("Modified")
    for model in models:
        size = f"{model.size / 1e9:.1f} GB" if model.size else ""
        table.add_row(model.name, size, model.modified_at or "")
    console.print(table)


@app.command("test-ollama")
def test_ollama(
    base_url: str = typer.Option(None, "--base-url", help="Ollama base URL"),
    model: str = typer.Option(None, "--model", "-m", help="Model to try"),
    assistant: str = typer.Option("assistant", "--assistant", "-a", help="Named AI configuration"),
    config: Path = CONFIG_OPTION,
):
    """Check that the Ollama server answers with the configured model."""
    from .backends.ollama import OllamaBackend

    settings = get_settings(config)
    ai = _assistant(settings, assistant)
    updates = {k: v for k, v in {"base_url": base_url, "model": model}.items() if v}
    if updates:
        ai = ai.model_copy(update=updates)

    success, message = _run(OllamaBackend().test_connection(ai))
    if success:
        console.print(f"[green]{escape(message)}[/green]")
    else:
        console.print(f"[red]{escape(message)}[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
