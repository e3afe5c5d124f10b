"""CLI commands for quizdesk.

Commands:
- profile: Fetch and decode one user's profile from the document store
- template: Write the bulk-upload spreadsheet template
- bulk-check: Parse a filled-in template and summarize it
- questions: List your own questions with filters and counts
- question-edit / question-delete: Change or remove one of your questions
- serve: Run the Web API
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from quizdesk.config.app_config import load_app_config
from quizdesk.core.identity import AuthAccount
from quizdesk.core.profile import Profile, decode_profile, find_user_document
from quizdesk.core.question_bank import (
    QuestionEdit,
    QuestionFilters,
    bank_stats,
    empty_message,
    filter_questions,
    type_label,
)
from quizdesk.core.question_creation import (
    BulkUploadError,
    CreationForm,
    TemplateError,
    build_template,
    parse_bulk_upload,
    template_filename,
)
from quizdesk.store.client import DocumentStoreClient, DocumentStoreError
from quizdesk.store.questions import QuestionApiClient, QuestionApiError

app = typer.Typer(
    name="quizdesk",
    help="Teacher and content-creator portal tools.",
    no_args_is_help=True,
)

console = Console()


async def _fetch_profile(email: str, account_id: str) -> Profile | None:
    async with DocumentStoreClient() as store:
        documents = await store.list_documents()
    document = find_user_document(documents, email)
    if document is None:
        return None
    return decode_profile(document, AuthAccount(email=email, account_id=account_id))


@app.command()
def profile(
    email: str = typer.Argument(..., help="Account email to look up"),
    account_id: str = typer.Option("", "--account-id", "-u", help="Account id to attach"),
) -> None:
    """Fetch and show a user's profile from the document store."""
    try:
        user = asyncio.run(_fetch_profile(email, account_id))
    except DocumentStoreError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    if user is None:
        console.print(f"[yellow]⚠ No user document with email {email}[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ {user.name}[/green] [dim]({user.role})[/dim]")
    console.print(f"  [dim]email:[/dim]   {user.email}")
    console.print(f"  [dim]school:[/dim]  {user.school_name or '-'} [dim]{user.school_id}[/dim]")
    console.print(f"  [dim]subjects:[/dim] {', '.join(user.subjects or []) or 'None'}")
    console.print(f"  [dim]grades:[/dim]   {', '.join(user.assigned_grades or []) or 'None'}")

    if not user.assigned_books:
        console.print("\n[dim]No books assigned yet[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Subject")
    table.add_column("Grade")
    table.add_column("Chapters", justify="right")
    for book in user.assigned_books:
        table.add_row(book.id, book.title, book.subject, book.grade, str(book.chapters))
    console.print(table)


@app.command()
def template(
    grade: str = typer.Option(..., "--grade", "-g", help="Grade label"),
    subject: str = typer.Option(..., "--subject", "-s", help="Subject"),
    book: str = typer.Option(..., "--book", "-b", help="Book title"),
    output_dir: Path = typer.Option(Path("."), "--out", "-o", help="Output directory"),
) -> None:
    """Write the bulk-upload template for a grade/subject/book."""
    form = CreationForm(subject=subject, grade=grade, book=book)
    try:
        content = build_template(form)
    except TemplateError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / template_filename(form)
    path.write_bytes(content)
    console.print("[green]✓ Template written[/green]")
    console.print(f"  [dim]path:[/dim] {path}")


@app.command(name="bulk-check")
def bulk_check(
    file: Path = typer.Argument(..., help="Filled-in template (.xlsx)"),
) -> None:
    """Parse a bulk-upload file and list the questions it contains."""
    if not file.exists():
        console.print(f"[red]✗ File not found: {file}[/red]")
        raise typer.Exit(code=1)

    try:
        rows = parse_bulk_upload(file.read_bytes())
    except BulkUploadError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    if not rows:
        console.print("[yellow]⚠ No questions found[/yellow]")
        raise typer.Exit(code=1)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Row", justify="right")
    table.add_column("Chapter")
    table.add_column("Difficulty")
    table.add_column("Type")
    table.add_column("Question")
    table.add_column("Answer")
    for row in rows:
        table.add_row(
            str(row.row),
            row.chapter,
            row.difficulty,
            type_label(row.question_type),
            row.question,
            row.correct_answer,
        )
    console.print(table)
    console.print(f"[green]✓ {len(rows)} question(s) ready to upload[/green]")


ROLES = ("teacher", "content_creator")


def _question_client(user_id: str, role: str, school_id: str | None) -> QuestionApiClient:
    if role not in ROLES:
        console.print(f"[red]✗ Unknown role '{role}' (use {' or '.join(ROLES)})[/red]")
        raise typer.Exit(code=1)

    config = load_app_config().question_api
    return QuestionApiClient(
        config.endpoint_for(role),
        user_role=role,
        user_id=user_id,
        school_id=school_id,
        base_url=config.base_url,
    )


async def _call(client: QuestionApiClient, method: str, *args):
    async with client:
        return await getattr(client, method)(*args)


@app.command()
def questions(
    user_id: str = typer.Option(..., "--user-id", "-u", help="Your account id"),
    role: str = typer.Option("teacher", "--role", "-r", help="teacher or content_creator"),
    school_id: str = typer.Option(None, "--school-id", help="School id header"),
    subject: str = typer.Option("", "--subject", "-s", help="Filter by subject"),
    grade: str = typer.Option("", "--grade", "-g", help="Filter by grade"),
    book: str = typer.Option("", "--book", "-b", help="Filter by book"),
) -> None:
    """List the questions you created."""
    client = _question_client(user_id, role, school_id)
    try:
        bank = asyncio.run(_call(client, "list_questions"))
    except QuestionApiError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    filters = QuestionFilters(subject=subject, grade=grade, book=book)
    shown = filter_questions(bank, filters)
    stats = bank_stats(bank, filters)
    console.print(
        f"[bold]{stats.questions}[/bold] questions [dim]|[/dim] "
        f"{stats.subjects} subjects [dim]|[/dim] {stats.grades} grades "
        f"[dim]|[/dim] {stats.books} books"
    )

    message = empty_message(len(bank), len(shown))
    if message:
        console.print(f"[dim]{message}[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Subject")
    table.add_column("Grade")
    table.add_column("Book")
    table.add_column("Chapter")
    table.add_column("Difficulty")
    table.add_column("Type")
    table.add_column("Question")
    for q in shown:
        table.add_row(
            q.id, q.subject, q.grade, q.book, q.chapter, q.difficulty, q.type_label,
            q.question_text or "",
        )
    console.print(table)


@app.command(name="question-edit")
def question_edit(
    question_id: str = typer.Argument(..., help="Question to edit"),
    user_id: str = typer.Option(..., "--user-id", "-u", help="Your account id"),
    role: str = typer.Option("teacher", "--role", "-r", help="teacher or content_creator"),
    text: str = typer.Option(None, "--text", help="New question text"),
    difficulty: str = typer.Option(None, "--difficulty", "-d", help="Easy, Medium or Hard"),
    chapter: str = typer.Option(None, "--chapter", "-c", help="New chapter"),
) -> None:
    """Change the text, difficulty or chapter of one of your questions."""
    edit = QuestionEdit(question_text=text, difficulty=difficulty, chapter=chapter)
    if not edit.to_api():
        console.print("[yellow]⚠ Nothing to change[/yellow]")
        raise typer.Exit(code=1)

    client = _question_client(user_id, role, None)
    try:
        asyncio.run(_call(client, "update_question", question_id, edit))
    except QuestionApiError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Question {question_id} updated[/green]")


@app.command(name="question-delete")
def question_delete(
    question_id: str = typer.Argument(..., help="Question to delete"),
    user_id: str = typer.Option(..., "--user-id", "-u", help="Your account id"),
    role: str = typer.Option("teacher", "--role", "-r", help="teacher or content_creator"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete one of your questions."""
    if not yes and not typer.confirm(f"Delete question {question_id}?"):
        raise typer.Exit(code=0)

    client = _question_client(user_id, role, None)
    try:
        asyncio.run(_call(client, "delete_question", question_id))
    except QuestionApiError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Question {question_id} deleted[/green]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
) -> None:
    """Run the Web API."""
    import uvicorn

    config = load_app_config()
    console.print(f"[blue]Serving on http://{host}:{port}[/blue]")
    console.print(f"  [dim]users:[/dim] {config.document_store.collection_url()}")
    uvicorn.run("quizdesk.web.api:app", host=host, port=port)


if __name__ == "__main__":
    app()
