import discord
from discord.ext import commands
import logging
import asyncio
from typing import Dict, Optional, Set
import os

from .config_manager import ConfigManager
from .models import MAX_CHOICES, SessionSnapshot, SessionState
from .presentation import (
    CHOICE_LABELS,
    build_question_embed,
    build_review_embed,
    build_status_embed,
    should_refresh_timer,
)
from .quiz_controller import QuizController

logger = logging.getLogger(__name__)

# Discord rows hold five buttons
CHOICES_PER_ROW = 5


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


class ChoiceButton(discord.ui.Button):
    """Selects one answer for the current question."""

    def __init__(self, bot: "QuizBot", channel_id: int, label: str, answer: str, selected: bool, row: int = 0):
        super().__init__(
            label=_truncate(f"{label}. {answer}", 80),
            style=discord.ButtonStyle.success if selected else discord.ButtonStyle.secondary,
            row=row
        )
        self.bot = bot
        self.channel_id = channel_id
        self.answer = answer

    async def callback(self, interaction: discord.Interaction):
        await self.bot.handle_choice(interaction, self.channel_id, self.answer)


class JumpSelect(discord.ui.Select):
    """Navigates to any question of the session."""

    def __init__(self, bot: "QuizBot", channel_id: int, snapshot: SessionSnapshot):
        options = []
        for i, question in enumerate(snapshot.questions):
            answered = i in snapshot.answered_indices
            options.append(discord.SelectOption(
                label=f"Question {i + 1}",
                value=str(i),
                description=_truncate(question.prompt, 100),
                emoji="✅" if answered else "⬜",
                default=i == snapshot.current_index
            ))
        super().__init__(placeholder="Jump to question…", options=options, row=3)
        self.bot = bot
        self.channel_id = channel_id

    async def callback(self, interaction: discord.Interaction):
        await self.bot.handle_jump(interaction, self.channel_id, int(self.values[0]))


class NextButton(discord.ui.Button):
    """Advances to the next question, or finishes on the last one."""

    def __init__(self, bot: "QuizBot", channel_id: int, snapshot: SessionSnapshot):
        super().__init__(
            label="Finish Quiz" if snapshot.is_last_question else "Next Question",
            style=discord.ButtonStyle.primary,
            emoji="🏁" if snapshot.is_last_question else "➡️",
            # Timer expiry still advances an unanswered question
            disabled=snapshot.current_selection is None,
            row=4
        )
        self.bot = bot
        self.channel_id = channel_id

    async def callback(self, interaction: discord.Interaction):
        await self.bot.handle_next(interaction, self.channel_id)


class QuestionView(discord.ui.View):
    """
    Interactive controls for the current question of a session.

    Answer buttons fill rows 0-2, five per row; the jump menu and the
    Next button take the last two rows.

    Raises:
        ValueError: If the question has more choices than the answer rows hold
    """

    def __init__(self, bot: "QuizBot", channel_id: int, snapshot: SessionSnapshot):
        super().__init__(timeout=None)
        question = snapshot.current_question
        if len(question.choices) > MAX_CHOICES:
            raise ValueError(
                f"Question has {len(question.choices)} choices, at most {MAX_CHOICES} can be shown"
            )
        for i, choice in enumerate(question.choices):
            label = CHOICE_LABELS[i]
            self.add_item(ChoiceButton(
                bot, channel_id, label, choice, choice == snapshot.current_selection, row=i // CHOICES_PER_ROW
            ))
        self.add_item(JumpSelect(bot, channel_id, snapshot))
        self.add_item(NextButton(bot, channel_id, snapshot))


class ResultView(discord.ui.View):
    """Shown under the review of a finished session."""

    def __init__(self, bot: "QuizBot", channel_id: int):
        super().__init__(timeout=None)
        self.bot = bot
        self.channel_id = channel_id

    @discord.ui.button(label="Take Quiz Again", style=discord.ButtonStyle.primary, emoji="🔄")
    async def replay_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.bot.handle_replay(interaction, self.channel_id)


class QuizBot(commands.Bot):
    """Discord bot for conducting timed quiz sessions"""

    def __init__(self, config=None, config_manager: Optional[ConfigManager] = None):
        # Set up intents - minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None  # We'll implement our own help command
        )

        # Store configuration
        self.app_config = config or {}

        # Initialize core components
        self.config_manager: Optional[ConfigManager] = config_manager
        self.quiz_controller: Optional[QuizController] = None

        # Last snapshot drawn per channel, to tell countdown ticks from structural changes
        self._last_rendered: Dict[int, SessionSnapshot] = {}
        self._render_tasks: Set[asyncio.Task] = set()
        # One lock per channel keeps message edits in the order they were produced
        self._render_locks: Dict[int, asyncio.Lock] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            if self.config_manager is None:
                self.config_manager = ConfigManager()
                rejected = self.config_manager.apply_config(self.app_config)
                for error in rejected:
                    logger.warning(f"Ignored configuration value: {error}")

            validation = self.config_manager.validate_settings()
            for issue in validation["issues"]:
                logger.warning(f"Settings check: {issue}")

            self.quiz_controller = QuizController(
                self.config_manager.create_question_source(),
                self.config_manager
            )

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="quiz", description="Start a timed quiz in this channel")
        async def quiz_command(interaction: discord.Interaction):
            await self.handle_start(interaction)

        @self.tree.command(name="stop", description="Stop the quiz in this channel")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show the current quiz progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="set_timer", description="Set the seconds allowed per question (5-300)")
        async def set_timer_command(interaction: discord.Interaction, seconds: int):
            await self.handle_setting(interaction, self.config_manager.set_timer_duration(seconds))

        @self.tree.command(name="set_questions", description="Set the number of questions per quiz (1-25)")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_setting(interaction, self.config_manager.set_question_count(number))

        @self.tree.command(name="set_difficulty", description="Set question difficulty: easy, medium, hard or any")
        async def set_difficulty_command(interaction: discord.Interaction, difficulty: str):
            await self.handle_setting(interaction, self.config_manager.set_difficulty(difficulty))

        @self.tree.command(name="reset_settings", description="Restore the default quiz settings")
        async def reset_settings_command(interaction: discord.Interaction):
            await self.handle_reset_settings(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.quiz_controller is not None:
            self.quiz_controller.shutdown()
        await super().close()

    # Session rendering

    def make_update_callback(self, channel_id: int):
        """Build the engine observer that mirrors a session into its Discord message."""
        def on_update(snapshot: SessionSnapshot) -> None:
            last = self._last_rendered.get(channel_id)
            structural = last is None or (
                (last.state, last.generation, last.current_selection, last.answered_indices) !=
                (snapshot.state, snapshot.generation, snapshot.current_selection, snapshot.answered_indices)
            )
            if not structural and not should_refresh_timer(snapshot.time_remaining):
                return

            self._last_rendered[channel_id] = snapshot
            task = asyncio.get_running_loop().create_task(
                self.render_session(channel_id, snapshot, with_view=structural)
            )
            self._render_tasks.add(task)
            task.add_done_callback(self._render_tasks.discard)
        return on_update

    async def render_session(self, channel_id: int, snapshot: SessionSnapshot, with_view: bool = True):
        """Edit the session message to show a snapshot, skipping ones already superseded."""
        lock = self._render_locks.setdefault(channel_id, asyncio.Lock())
        async with lock:
            latest = self._last_rendered.get(channel_id)
            if latest is not None and snapshot.generation < latest.generation:
                logger.debug(
                    f"Skipping stale render for channel {channel_id}: "
                    f"generation {snapshot.generation}, latest {latest.generation}"
                )
                return
            await self._edit_session_message(channel_id, snapshot, with_view)

    async def _edit_session_message(self, channel_id: int, snapshot: SessionSnapshot, with_view: bool):
        session = self.quiz_controller.get_session(channel_id)
        if session is None or session.message is None:
            return

        try:
            if snapshot.state is SessionState.ACTIVE:
                if with_view:
                    await session.message.edit(
                        embed=build_question_embed(snapshot),
                        view=QuestionView(self, channel_id, snapshot)
                    )
                else:
                    await session.message.edit(embed=build_question_embed(snapshot))
            elif snapshot.state is SessionState.FINISHED:
                await session.message.edit(
                    embed=build_review_embed(session.engine.review()),
                    view=ResultView(self, channel_id)
                )
        except (discord.HTTPException, ValueError) as e:
            # Log error but don't raise to avoid breaking the countdown
            logger.error(f"Failed to update quiz message for channel {channel_id}: {e}")

    # Command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        embed = discord.Embed(
            title="🧠 Quiz Challenge",
            description="Test your knowledge across various topics!",
            color=0x6699ff
        )
        embed.add_field(
            name="🎮 Playing",
            value=(
                "`/quiz` - Start a quiz in this channel\n"
                "`/stop` - Stop the quiz\n"
                "`/status` - Show progress"
            ),
            inline=False
        )
        embed.add_field(
            name="⚙️ Settings",
            value=(
                "`/set_timer <seconds>` - Time allowed per question\n"
                "`/set_questions <number>` - Questions per quiz\n"
                "`/set_difficulty <level>` - easy, medium, hard or any\n"
                "`/reset_settings` - Restore the defaults"
            ),
            inline=False
        )
        embed.add_field(
            name="ℹ️ How it works",
            value=(
                "Pick an answer and press Next. When the timer runs out the quiz moves on "
                "and an unanswered question counts as wrong. Use the menu to revisit any "
                "question; you get a fresh countdown each time."
            ),
            inline=False
        )
        embed.add_field(name="Current Settings", value=self.config_manager.get_settings_summary(), inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_start(self, interaction: discord.Interaction):
        """Handle /quiz command"""
        channel_id = interaction.channel_id
        try:
            await interaction.response.defer(thinking=True)

            result = await self.quiz_controller.start_quiz(
                channel_id,
                interaction.user.id,
                self.make_update_callback(channel_id)
            )
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Quiz Start Failed")
                return

            session = self.quiz_controller.get_session(channel_id)
            snapshot = session.engine.snapshot()
            message = await interaction.followup.send(
                embed=build_question_embed(snapshot),
                view=QuestionView(self, channel_id, snapshot),
                wait=True
            )
            self.quiz_controller.set_message(channel_id, message)
            self._last_rendered[channel_id] = snapshot

        except ValueError as e:
            logger.error(f"Cannot display quiz in channel {channel_id}: {e}")
            self.quiz_controller.stop_quiz(channel_id)
            self._last_rendered.pop(channel_id, None)
            await self.send_error_response(interaction, str(e), "❌ Quiz Start Error")
        except discord.HTTPException as e:
            logger.error(f"Discord API error in quiz command: {e}")
            # Without a message to drive, the session would run unseen
            self.quiz_controller.stop_quiz(channel_id)
            await self.send_error_response(interaction, "Failed to display the quiz", "❌ Quiz Start Error")

    async def handle_choice(self, interaction: discord.Interaction, channel_id: int, answer: str):
        result = self.quiz_controller.select_answer(channel_id, interaction.user.id, answer)
        await self._acknowledge(interaction, result)

    async def handle_next(self, interaction: discord.Interaction, channel_id: int):
        result = self.quiz_controller.advance(channel_id, interaction.user.id)
        await self._acknowledge(interaction, result)

    async def handle_jump(self, interaction: discord.Interaction, channel_id: int, index: int):
        result = self.quiz_controller.jump_to(channel_id, interaction.user.id, index)
        await self._acknowledge(interaction, result)

    async def handle_replay(self, interaction: discord.Interaction, channel_id: int):
        """Handle the Take Quiz Again button"""
        try:
            await interaction.response.defer()
            result = await self.quiz_controller.replay(
                channel_id,
                interaction.user.id,
                self.make_update_callback(channel_id)
            )
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Quiz Start Failed")
                return

            session = self.quiz_controller.get_session(channel_id)
            snapshot = session.engine.snapshot()
            self.quiz_controller.set_message(channel_id, interaction.message)
            self._last_rendered[channel_id] = snapshot
            await interaction.edit_original_response(
                embed=build_question_embed(snapshot),
                view=QuestionView(self, channel_id, snapshot)
            )
        except ValueError as e:
            logger.error(f"Cannot display replay in channel {channel_id}: {e}")
            self.quiz_controller.stop_quiz(channel_id)
            self._last_rendered.pop(channel_id, None)
            await self.send_error_response(interaction, str(e), "❌ Quiz Start Error")
        except discord.HTTPException as e:
            logger.error(f"Discord API error in replay: {e}")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        channel_id = interaction.channel_id
        session = self.quiz_controller.get_session(channel_id)
        message = session.message if session else None

        result = self.quiz_controller.stop_quiz(channel_id)
        self._last_rendered.pop(channel_id, None)
        self._render_locks.pop(channel_id, None)

        try:
            if not result['success']:
                await self.send_info_response(interaction, result['user_message'], "ℹ️ No Active Quiz")
                return

            if message is not None:
                await message.edit(view=None)

            info = result['session_info']
            embed = discord.Embed(
                title="🛑 Quiz Stopped",
                description=(
                    f"Stopped at question {info['current_question']}/{info['total_questions']} "
                    f"with {info['answered']} answered."
                ),
                color=0xff6600
            )
            embed.set_footer(text="Use /quiz to begin a new quiz")
            await interaction.response.send_message(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Discord API error in stop command: {e}")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        status = self.quiz_controller.get_status(interaction.channel_id)
        if status is None:
            await self.send_info_response(
                interaction, "No quiz in this channel. Use `/quiz` to start one.", "ℹ️ No Active Quiz"
            )
            return
        await interaction.response.send_message(embed=build_status_embed(status), ephemeral=True)

    async def handle_setting(self, interaction: discord.Interaction, result: dict):
        """Report the outcome of a settings command"""
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "⚙️ Settings Updated")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")

    async def handle_reset_settings(self, interaction: discord.Interaction):
        """Handle /reset_settings command"""
        self.config_manager.reset_to_defaults()
        await self.send_info_response(
            interaction, self.config_manager.get_settings_summary(), "⚙️ Settings Reset"
        )

    async def _acknowledge(self, interaction: discord.Interaction, result: dict):
        """Acknowledge a component interaction; the session message updates itself."""
        try:
            if result['success']:
                await interaction.response.defer()
            else:
                await self.send_error_response(interaction, result['user_message'])
        except discord.HTTPException as e:
            logger.error(f"Failed to acknowledge interaction: {e}")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xff0000
            )
            embed.set_footer(text="If this error persists, try using /help for available commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0x6699ff
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")


async def run_bot(token=None, config=None, config_manager: Optional[ConfigManager] = None):
    """Run the bot with proper error handling"""
    # Fall back to environment variable if no token provided
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config, config_manager)

    try:
        logger.info("Starting Quiz Challenge bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
