"""Interactive CLI application."""
import logging
import time
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.prompt import Confirm, FloatPrompt, IntPrompt, Prompt
from rich.table import Table

from estudeaqui.config import get_settings
from estudeaqui.dashboard import format_minutes, get_dashboard
from estudeaqui.db import init_db
from estudeaqui.exceptions import EstudeaquiError, InvalidTransitionError
from estudeaqui.flashcards import create_flashcard
from estudeaqui.fsrs import DEFAULT_PARAMETERS, FSRSParameters
from estudeaqui.importer import (
    apply_saved_template, delete_template, import_template, list_templates, save_subjects_as_template,
)
from estudeaqui.planning import (
    apply_schedule_plan, distribute_hours, distribute_sessions, max_sessions, save_schedule_plan,
)
from estudeaqui.pomodoro import (
    FOCUS, PomodoroTimer, build_pomodoro_log, load_pomodoro_settings, progress_fraction,
)
from estudeaqui.review import current_card, get_active_session, start_review_session, submit_review
from estudeaqui.revision import COMPLETED, CURRENT, is_cycle_complete, revision_boxes, toggle_revision_box
from estudeaqui.sequence import (
    advance_sequence, current_sequence_item, get_active_sequence, move_sequence_item, reset_sequence,
    save_study_sequence, update_study_sequence,
)
from estudeaqui.study_log import add_study_log, get_study_logs
from estudeaqui.subjects import add_subject, add_topic, get_subjects, get_topic, toggle_topic_completed

console = Console()
logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "focus": "Foco",
    "short_break": "Pausa curta",
    "long_break": "Pausa longa",
    "paused": "Pausado",
    "idle": "Parado",
}


class SessionExitRequested(Exception):
    """Raised when the user types 'q' or 'menu' in the middle of a session."""


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in ("q", "menu"):
        raise SessionExitRequested()
    return answer


def session_int_prompt(prompt: str, choices: list[str]) -> int:
    answer = session_prompt(prompt, choices=choices + ["q"])
    return int(answer)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def show_welcome():
    console.print(Panel(
        "[bold]Estudeaqui[/bold]\n[dim]Planejamento de estudos para concursos[/dim]",
        title="Bem-vindo", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("subjects", "List subjects and topics"),
        ("add", "Add a subject or topic"),
        ("done", "Toggle a topic as completed"),
        ("log", "Register a study session"),
        ("history", "Recent study sessions"),
        ("cycle", "Study cycle (subject rotation)"),
        ("pomodoro", "Focus timer"),
        ("revision", "Revision cycle"),
        ("cards", "Flashcard review"),
        ("newcard", "Create a flashcard"),
        ("dashboard", "Statistics"),
        ("import", "Import a subject template"),
        ("templates", "Saved subject templates"),
        ("plan", "Weekly schedule plan"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def choose_subject(db_path: str, user_id: str):
    subjects = get_subjects(db_path, user_id)
    if not subjects:
        console.print("[yellow]No subjects yet. Use 'add' or 'import' first.[/yellow]")
        return None
    for i, s in enumerate(subjects, 1):
        console.print(f"  [cyan]{i}[/cyan]) {s.name}")
    index = IntPrompt.ask("Subject", choices=[str(i) for i in range(1, len(subjects) + 1)])
    return subjects[index - 1]


def choose_topic(subject):
    if not subject.topics:
        console.print("[yellow]This subject has no topics.[/yellow]")
        return None
    for t in subject.topics:
        mark = "[green]✓[/green]" if t.is_completed else " "
        console.print(f"  [cyan]{t.order + 1}[/cyan]) {mark} {t.name}")
    index = IntPrompt.ask("Topic", choices=[str(t.order + 1) for t in subject.topics])
    return next(t for t in subject.topics if t.order + 1 == index)


def cmd_subjects(db_path: str, user_id: str):
    subjects = get_subjects(db_path, user_id)
    table = Table(title="Subjects")
    table.add_column("Subject", style="cyan")
    table.add_column("Topics", justify="right")
    table.add_column("Done", justify="right")
    table.add_column("Revision", justify="right")
    for s in subjects:
        done = sum(1 for t in s.topics if t.is_completed)
        table.add_row(s.name, str(len(s.topics)), str(done), str(s.revision_progress))
    console.print(table)


def cmd_add(db_path: str, user_id: str):
    kind = Prompt.ask("Add", choices=["subject", "topic"], default="subject")
    if kind == "subject":
        name = Prompt.ask("Name")
        duration = IntPrompt.ask("Study goal per cycle slot (minutes)", default=60)
        subject = add_subject(db_path, user_id, name, study_duration=duration)
        console.print(f"[green]Added {subject.name}[/green]")
    else:
        subject = choose_subject(db_path, user_id)
        if subject:
            topic = add_topic(db_path, subject.id, Prompt.ask("Topic name"))
            console.print(f"[green]Added topic {topic.order + 1}: {topic.name}[/green]")


def cmd_done(db_path: str, user_id: str):
    subject = choose_subject(db_path, user_id)
    topic = choose_topic(subject) if subject else None
    if topic:
        topic = toggle_topic_completed(db_path, topic.id)
        state = "completed" if topic.is_completed else "pending"
        console.print(f"[green]{topic.name} marked as {state}[/green]")


def cmd_log(db_path: str, user_id: str):
    subject = choose_subject(db_path, user_id)
    topic = choose_topic(subject) if subject else None
    if not topic:
        return
    data = {
        "subject_id": subject.id,
        "topic_id": topic.id,
        "duration": IntPrompt.ask("Minutes studied", default=30),
        "start_page": IntPrompt.ask("Start page", default=0),
        "end_page": IntPrompt.ask("End page", default=0),
        "questions_total": IntPrompt.ask("Questions answered", default=0),
        "questions_correct": IntPrompt.ask("Questions correct", default=0),
        "source": "manual",
    }
    sequence = get_active_sequence(db_path, user_id)
    item = current_sequence_item(sequence) if sequence else None
    if item and item.subject_id == subject.id:
        data["sequence_item_index"] = sequence.sequence_index
    add_study_log(db_path, user_id, data)
    console.print("[green]Session registered![/green]")


def offer_pomodoro_log(db_path: str, user_id: str, timer: PomodoroTimer, finished) -> None:
    if not finished.associated_item_id:
        return
    if not Confirm.ask("Sessão finalizada! Registrar no histórico?", default=True):
        return
    topic = get_topic(db_path, finished.associated_item_id)
    add_study_log(db_path, user_id, build_pomodoro_log(finished, timer.settings, topic))
    console.print("[green]Pomodoro registered![/green]")


def run_pomodoro(db_path: str, user_id: str, timer: PomodoroTimer, sleep=time.sleep) -> None:
    """Count down until the user stops. Ctrl+C pauses.

    The progress bar is stopped while the focus-complete callback runs so
    its prompts are not drawn over.
    """
    callback = timer.on_focus_complete
    with Progress(
        TextColumn("[bold]{task.description}"), BarColumn(), TextColumn("{task.fields[clock]}"),
        console=console, transient=True,
    ) as progress:

        def focus_complete(finished):
            progress.stop()
            try:
                callback(finished)
            finally:
                progress.start()

        if callback:
            timer.on_focus_complete = focus_complete
        try:
            _countdown(timer, progress, sleep)
        finally:
            timer.on_focus_complete = callback


def _countdown(timer: PomodoroTimer, progress: Progress, sleep) -> None:
    bar = progress.add_task("", total=1.0, clock="")
    while timer.state.status != "idle":
        try:
            key = timer.generation
            sleep(1)
            timer.tick(key)
        except KeyboardInterrupt:
            timer.pause()
            progress.stop()
            choice = Prompt.ask("Paused", choices=["resume", "break", "stop"], default="resume")
            progress.start()
            if choice == "stop":
                timer.stop()
                break
            timer.resume()
            if choice == "break":
                try:
                    timer.skip_to_break()
                except InvalidTransitionError as e:
                    console.print(f"[yellow]{e}[/yellow]")
        minutes, seconds = divmod(timer.state.time_remaining, 60)
        progress.update(
            bar,
            description=STATUS_LABELS[timer.state.status],
            completed=progress_fraction(timer.state, timer.settings),
            clock=f"{minutes:02d}:{seconds:02d}  ciclo {timer.state.current_cycle}",
        )


def cmd_pomodoro(db_path: str, user_id: str):
    settings = load_pomodoro_settings(db_path, user_id)
    topic_id = None
    if Confirm.ask("Associate with a topic?", default=True):
        subject = choose_subject(db_path, user_id)
        topic = choose_topic(subject) if subject else None
        topic_id = topic.id if topic else None
    timer = PomodoroTimer(settings)
    timer.on_focus_complete = lambda finished: offer_pomodoro_log(db_path, user_id, timer, finished)
    timer.start(item_id=topic_id, item_type="topic")
    console.print(f"[cyan]{FOCUS.title()}: {settings.tasks[0].name}[/cyan] [dim](Ctrl+C to pause)[/dim]")
    run_pomodoro(db_path, user_id, timer)
    console.print(f"[dim]Pomodoros today: {timer.state.pomodoros_completed_today}[/dim]")


def cmd_revision(db_path: str, user_id: str):
    subject = choose_subject(db_path, user_id)
    if not subject:
        return
    boxes = revision_boxes(subject)
    if not boxes:
        console.print("[yellow]Complete some topics to start the revision cycle.[/yellow]")
        return
    table = Table(title=f"Revision cycle: {subject.name}")
    table.add_column("#", justify="right")
    table.add_column("Topic")
    table.add_column("Status")
    for box in boxes:
        color = {COMPLETED: "green", CURRENT: "cyan"}.get(box.status, "dim")
        table.add_row(str(box.index + 1), box.topic.name, f"[{color}]{box.status}[/{color}]")
    console.print(table)
    if is_cycle_complete(subject):
        console.print("[green]Revision cycle complete![/green]")
    choice = Prompt.ask("Toggle box number (blank to go back)", default="")
    if choice.strip().isdigit():
        updated = toggle_revision_box(db_path, subject.id, int(choice) - 1)
        console.print(f"[green]Progress: {updated.revision_progress}/{len(boxes)}[/green]")


def cmd_newcard(db_path: str, user_id: str):
    card = create_flashcard(db_path, user_id, Prompt.ask("Question"), Prompt.ask("Answer"))
    console.print(f"[green]Flashcard created (due now).[/green] [dim]{card.id}[/dim]")


def run_review_session(db_path: str, session, params: FSRSParameters = DEFAULT_PARAMETERS) -> None:
    while True:
        card = current_card(db_path, session)
        if card is None:
            break
        position = f"{session.current_index + 1}/{session.total_cards}"
        console.print(Panel(card.question, title=f"Card {position}", border_style="cyan"))
        session_prompt("[dim]Press Enter to reveal answer (q to stop)[/dim]", default="")
        console.print(Panel(card.answer, border_style="green"))
        rating = session_int_prompt(
            "Rate yourself (1=again, 2=hard, 3=good, 4=easy)", choices=["1", "2", "3", "4"],
        )
        updated, session = submit_review(db_path, session.id, card.id, rating, params=params)
        console.print(f"[dim]Next review: {updated.next_review:%Y-%m-%d %H:%M}[/dim]\n")
    console.print(
        f"[bold]Session done: {session.correct_count}/{session.total_cards} remembered[/bold]"
    )


def cmd_cards(db_path: str, user_id: str):
    session = get_active_session(db_path, user_id) or start_review_session(db_path, user_id)
    if session is None:
        console.print("[yellow]No flashcards due right now![/yellow]")
        return
    try:
        run_review_session(db_path, session, get_settings().fsrs_parameters())
    except SessionExitRequested:
        console.print("[dim]Session saved, resume it from 'cards'.[/dim]")


def cmd_dashboard(db_path: str, user_id: str):
    data = get_dashboard(db_path, user_id)
    completed = data["completion"]["completed"]
    console.print(Panel(
        f"Streak: [bold]{data['streak']}[/bold] days  |  "
        f"Today: [bold]{format_minutes(data['time_today'])}[/bold]  |  "
        f"This week: [bold]{format_minutes(data['time_this_week'])}[/bold]  |  "
        f"Topics done: [bold]{completed * 100:.0f}%[/bold]",
        title="Dashboard", border_style="blue",
    ))

    table = Table(title="Time and accuracy by subject")
    table.add_column("Subject", style="cyan")
    table.add_column("Time", justify="right")
    table.add_column("Accuracy", justify="right")
    accuracy = {a["subject_id"]: a for a in data["accuracy_by_subject"]}
    for row in data["time_by_subject"]:
        acc = accuracy.get(row["subject_id"])
        table.add_row(
            row["name"],
            format_minutes(row["minutes"]),
            f"{acc['accuracy']}% ({acc['correct_questions']}/{acc['total_questions']})" if acc else "-",
        )
    console.print(table)

    console.print("\n[bold]Last 7 days[/bold]")
    peak = max((d["minutes"] for d in data["daily_time"]), default=0) or 1
    for day in data["daily_time"]:
        bar = "█" * round(day["minutes"] / peak * 20)
        console.print(f"  {day['label']} {day['date'][5:]} [cyan]{bar}[/cyan] {day['minutes']}m")


def cmd_history(db_path: str, user_id: str):
    subjects = {s.id: s.name for s in get_subjects(db_path, user_id)}
    table = Table(title="Study history")
    table.add_column("Date")
    table.add_column("Subject", style="cyan")
    table.add_column("Minutes", justify="right")
    table.add_column("Questions", justify="right")
    table.add_column("Source")
    for log in get_study_logs(db_path, user_id)[:20]:
        table.add_row(
            log.date[:16].replace("T", " "), subjects.get(log.subject_id, "?"), str(log.duration),
            f"{log.questions_correct}/{log.questions_total}", log.source,
        )
    console.print(table)


def cmd_cycle(db_path: str, user_id: str):
    sequence = get_active_sequence(db_path, user_id)
    if sequence is None:
        subjects = get_subjects(db_path, user_id)
        if not subjects or not Confirm.ask("No study cycle yet. Create one with all subjects?"):
            return
        sequence = save_study_sequence(
            db_path, user_id, Prompt.ask("Cycle name", default="Ciclo"), [s.id for s in subjects],
        )
    names = {s.id: s for s in get_subjects(db_path, user_id)}
    table = Table(title=f"Study cycle: {sequence.name} (restarts: {sequence.restart_count})")
    table.add_column("#", justify="right")
    table.add_column("Subject", style="cyan")
    table.add_column("Studied", justify="right")
    for i, item in enumerate(sequence.items):
        subject = names.get(item.subject_id)
        goal = f" / {subject.study_duration}m" if subject and subject.study_duration else ""
        marker = " ←" if i == sequence.sequence_index else ""
        table.add_row(
            str(i + 1), (subject.name if subject else "?") + marker,
            f"{item.total_time_studied}m{goal}",
        )
    console.print(table)
    if current_sequence_item(sequence) is None:
        console.print("[green]Cycle finished![/green]")
    action = Prompt.ask("Action", choices=["back", "next", "restart", "move", "edit"], default="back")
    if action == "next":
        advance_sequence(db_path, user_id)
    elif action == "restart":
        reset_sequence(db_path, user_id)
    elif action == "move":
        slots = [str(i) for i in range(1, len(sequence.items) + 1)]
        source = IntPrompt.ask("Move slot", choices=slots)
        target = IntPrompt.ask("To position", choices=slots)
        move_sequence_item(db_path, sequence.id, source - 1, target - 1)
    elif action == "edit":
        edit_cycle(db_path, user_id, sequence)


def edit_cycle(db_path: str, user_id: str, sequence):
    subjects = get_subjects(db_path, user_id)
    for i, s in enumerate(subjects, 1):
        console.print(f"  [cyan]{i}[/cyan]) {s.name}")
    answer = Prompt.ask("Subjects in cycle order, repeats allowed (e.g. 1,2,1,3)")
    picks = [p.strip() for p in answer.split(",") if p.strip()]
    if not all(p.isdigit() and 1 <= int(p) <= len(subjects) for p in picks):
        console.print("[red]Use subject numbers from the list.[/red]")
        return
    updated = update_study_sequence(db_path, sequence.id, [subjects[int(p) - 1].id for p in picks])
    console.print(f"[green]Cycle updated: {len(updated.items)} slots[/green]")


def cmd_import(db_path: str, user_id: str):
    file_path = Prompt.ask("Template file (.json, .yaml)")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    result = import_template(db_path, user_id, file_path)
    console.print(
        f"[green]Imported {result['name']}: {result['subjects']} subjects, "
        f"{result['topics']} topics[/green]"
    )


def cmd_templates(db_path: str, user_id: str):
    templates = list_templates(db_path, user_id)
    for i, t in enumerate(templates, 1):
        console.print(f"  [cyan]{i}[/cyan]) {t.name} [dim]({len(t.subjects)} subjects)[/dim]")
    action = Prompt.ask("Action", choices=["back", "save", "apply", "delete"], default="back")
    if action == "save":
        template = save_subjects_as_template(db_path, user_id, Prompt.ask("Template name"))
        console.print(f"[green]Saved template {template.name}[/green]")
        return
    if action == "back" or not templates:
        return
    index = IntPrompt.ask("Template", choices=[str(i) for i in range(1, len(templates) + 1)])
    template = templates[index - 1]
    if action == "apply":
        subjects = apply_saved_template(db_path, user_id, template.id)
        console.print(f"[green]Added {len(subjects)} subjects from {template.name}[/green]")
    else:
        delete_template(db_path, template.id)
        console.print(f"[green]Deleted template {template.name}[/green]")


def cmd_plan(db_path: str, user_id: str):
    subjects = get_subjects(db_path, user_id)
    if not subjects:
        console.print("[yellow]No subjects yet. Use 'add' or 'import' first.[/yellow]")
        return
    hours = FloatPrompt.ask("Weekly study hours", default=20.0)
    duration = IntPrompt.ask("Session length (minutes)", default=50)
    sessions = distribute_sessions(subjects, hours, duration)
    by_weight = distribute_hours(subjects, hours)

    table = Table(title=f"Weekly plan: {max_sessions(hours, duration)} sessions of {duration}m")
    table.add_column("Subject", style="cyan")
    table.add_column("Level")
    table.add_column("Weight", justify="right")
    table.add_column("Sessions", justify="right")
    table.add_column("Hours by weight", justify="right")
    for s in subjects:
        table.add_row(
            s.name, s.knowledge_level, f"{s.weight:g}", str(sessions[s.id]), f"{by_weight[s.id]:.1f}h",
        )
    console.print(table)
    if Confirm.ask("Save and apply the session plan?", default=False):
        plan = save_schedule_plan(db_path, user_id, Prompt.ask("Plan name", default="Semana"), hours, duration)
        apply_schedule_plan(db_path, plan.id)
        console.print("[green]Weekly hours updated for every subject.[/green]")


COMMANDS = {
    "subjects": cmd_subjects,
    "add": cmd_add,
    "done": cmd_done,
    "log": cmd_log,
    "history": cmd_history,
    "cycle": cmd_cycle,
    "pomodoro": cmd_pomodoro,
    "revision": cmd_revision,
    "cards": cmd_cards,
    "newcard": cmd_newcard,
    "dashboard": cmd_dashboard,
    "import": cmd_import,
    "templates": cmd_templates,
    "plan": cmd_plan,
}


def main():
    settings = get_settings()
    configure_logging(settings.log_level)
    db_path = settings.db_path
    user_id = settings.user_id
    init_db(db_path)

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="dashboard").strip().lower()
        if choice in ("quit", "exit", "q"):
            console.print("[dim]Bons estudos![/dim]")
            break
        command = COMMANDS.get(choice)
        if command is None:
            console.print("[red]Unknown command. Try again.[/red]")
            continue
        try:
            command(db_path, user_id)
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except EstudeaquiError as e:
            console.print(f"[red]Error: {e}[/red]")
        except Exception as e:
            logger.exception("Command %s failed", choice)
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
