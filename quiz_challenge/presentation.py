"""
Embed builders that render session snapshots and reviews for Discord.
"""
from typing import Any, Dict, Tuple

import discord

from .models import Difficulty, SessionReview, SessionSnapshot
from .review import get_score_tier

DIFFICULTY_BADGES = {
    Difficulty.EASY: "🟢 Easy",
    Difficulty.MEDIUM: "🟡 Medium",
    Difficulty.HARD: "🔴 Hard",
    Difficulty.UNKNOWN: "⚪ Unknown",
}

CHOICE_LABELS = tuple("ABCDEFGHIJKLMNO")

# Discord caps embed descriptions at 4096 characters
MAX_DESCRIPTION_LENGTH = 4096


def timer_style(remaining: int) -> Tuple[int, str, str]:
    """
    Pick colour, emoji and footer for the countdown.

    Returns:
        Tuple of (colour, emoji, footer text)
    """
    if remaining > 10:
        return 0x00ff00, "⏱️", "Pick an answer, then press Next"
    elif remaining > 5:
        return 0xff6600, "⚠️", "⚡ Time running out!"
    else:
        return 0xff0000, "🚨", "🚨 Final seconds!"


def should_refresh_timer(remaining: int) -> bool:
    """Throttle countdown message edits to every 5 units and the final seconds."""
    return remaining % 5 == 0 or remaining <= 5


def progress_bar(percent: int, width: int = 10) -> str:
    filled = max(0, min(width, round(percent / 100 * width)))
    return "▰" * filled + "▱" * (width - filled)


def build_question_embed(snapshot: SessionSnapshot) -> discord.Embed:
    """
    Render the current question of an active session.

    Args:
        snapshot: Snapshot of an ACTIVE session

    Returns:
        Embed showing the prompt, choices, countdown and progress
    """
    question = snapshot.current_question
    if question is None:
        raise ValueError("Snapshot has no current question")

    colour, timer_emoji, footer_text = timer_style(snapshot.time_remaining)
    embed = discord.Embed(
        title=f"🎯 Question {snapshot.current_index + 1} of {snapshot.total}",
        description=question.prompt,
        color=colour
    )

    choice_lines = []
    for i, choice in enumerate(question.choices):
        label = CHOICE_LABELS[i] if i < len(CHOICE_LABELS) else str(i + 1)
        marker = "👉 " if choice == snapshot.current_selection else ""
        choice_lines.append(f"{marker}**{label}.** {choice}")
    embed.add_field(name="Choices", value="\n".join(choice_lines), inline=False)

    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=f"{snapshot.time_remaining}s",
        inline=True
    )
    embed.add_field(name="Difficulty", value=DIFFICULTY_BADGES[question.difficulty], inline=True)
    if question.category:
        embed.add_field(name="📚 Category", value=question.category, inline=True)

    embed.add_field(
        name="📊 Progress",
        value=(
            f"{progress_bar(snapshot.progress_percent)} {snapshot.progress_percent}%\n"
            f"Answered: {len(snapshot.answered_indices)}/{snapshot.total}"
        ),
        inline=False
    )

    embed.set_footer(text=footer_text)
    return embed


def build_review_embed(review: SessionReview) -> discord.Embed:
    """
    Render the scored review of a finished session.

    Args:
        review: Review produced when the session finished

    Returns:
        Embed with totals, an encouragement message and per-question lines
    """
    message, colour = get_score_tier(review)

    lines = []
    for item in review.items:
        icon = "✅" if item.is_correct else "❌"
        line = f"{icon} **{item.index + 1}.** {item.prompt}\nYour answer: {item.user_answer or 'No answer'}"
        if not item.is_correct:
            line += f"\nCorrect answer: {item.correct_answer}"
        lines.append(line)

    review_text = "\n\n".join(lines)
    header = f"**{message}**\n\n**Review Answers:**\n"
    if len(header) + len(review_text) > MAX_DESCRIPTION_LENGTH:
        review_text = review_text[:MAX_DESCRIPTION_LENGTH - len(header) - 1] + "…"

    embed = discord.Embed(
        title="🏆 Quiz Complete!",
        description=header + review_text,
        color=colour
    )
    embed.add_field(name="✅ Correct", value=str(review.score), inline=True)
    embed.add_field(name="❌ Wrong", value=str(review.wrong), inline=True)
    embed.add_field(name="📈 Score", value=f"{review.percentage}%", inline=True)
    embed.set_footer(text="Press Take Quiz Again to play a new set of questions")
    return embed


def build_status_embed(status: Dict[str, Any]) -> discord.Embed:
    """Render the controller's status dictionary for /status."""
    embed = discord.Embed(
        title="📋 Quiz Status",
        description=f"State: **{status['state']}**",
        color=0x6699ff
    )
    if status['state'] == "finished":
        embed.add_field(
            name="🏆 Final Score",
            value=f"{status['score']}/{status['total_questions']}",
            inline=False
        )
    else:
        embed.add_field(
            name="📊 Progress",
            value=(
                f"Question {status['current_question']}/{status['total_questions']}\n"
                f"Answered: {status['answered']}/{status['total_questions']}"
            ),
            inline=False
        )
        embed.add_field(
            name="⏱️ Timer",
            value=f"{status['time_remaining']}/{status['time_limit']} seconds remaining",
            inline=False
        )
    embed.add_field(name="👤 Player", value=f"<@{status['owner_id']}>", inline=True)
    embed.set_footer(text="Use /help to see all available commands")
    return embed
