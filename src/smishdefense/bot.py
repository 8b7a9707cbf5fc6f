"""Main Telegram bot module.

Every chat is treated as one device: it owns an anonymous identity and a
local progress store under ``DEVICES_DIR/<chat id>/``.
"""
import html
import logging
from pathlib import Path
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import CallbackContext, ConversationHandler

from smishdefense.config import IDENTITY_FILE, PROGRESS_FILE, settings
from smishdefense.errors import CatalogLoadError, SessionStateError, TransientSyncFailure
from smishdefense.models.training_models import (
    Action,
    Feedback,
    FeedbackKind,
    MessageItem,
    SessionMode,
    SessionState,
)
from smishdefense.services.catalog_service import Catalog, CatalogService
from smishdefense.services.feedback_service import progress_remark
from smishdefense.services.identity_service import IdentityProvider
from smishdefense.services.progress_service import ProgressStore
from smishdefense.services.session_service import SessionController
from smishdefense.services.sync_service import SyncBridge
from smishdefense.utils import percent, truncate_text

# Get logger for this module
logger = logging.getLogger(__name__)

# Conversation states
ASKING_NAME, MAIN_MENU, TRAINING = range(3)

# Button texts
MENU = "🏠 Menu"
START_TRAINING = "🎓 Start Training"
VIEW_STATISTICS = "📊 Statistics"
RESET_PROGRESS = "🗑️ Reset Progress"
SKIP = "⏭️ Skip"

ACTION_BUTTONS = [
    (Action.ACCEPT, "✅ Accept"),
    (Action.QUESTION, "❓ Question"),
    (Action.BLOCK, "🚫 Block"),
]

FEEDBACK_ICONS = {
    FeedbackKind.CORRECT: "✅",
    FeedbackKind.INCORRECT: "❌",
    FeedbackKind.QUESTION: "🔍",
}

ERR_MSG_CATALOG = "⚠️ Failed to load messages.\nPlease send /start to try again."


def msg_back_to(text: str) -> str: return f"🔙 {text}"


KB_BACK_TO_MENU = [[InlineKeyboardButton(msg_back_to(MENU), callback_data="back_to_menu")]]


async def log_received(update: Update, context_type: str) -> None:
    """Log message."""
    txt = ""
    if update.callback_query:
        txt = f" {update.callback_query.data}"
    elif update.message and update.message.text:
        txt = f" {update.message.text}"
    logger.info(f"Received @{context_type:8} from chat {update.effective_chat.id}{txt}")


def device_path(update: Update, filename: str) -> Path:
    """Path of a per-device file for the chat of an update."""
    return settings.paths.devices_dir / str(update.effective_chat.id) / filename


def get_identity_provider(update: Update) -> IdentityProvider:
    return IdentityProvider(device_path(update, IDENTITY_FILE))


def get_progress_store(update: Update) -> ProgressStore:
    return ProgressStore(device_path(update, PROGRESS_FILE)).load()


def get_sync_bridge(context: CallbackContext) -> SyncBridge:
    """Sync bridge shared by all chats of the application."""
    bridge = context.bot_data.get("sync_bridge")
    if bridge is None:
        bridge = SyncBridge()
        context.bot_data["sync_bridge"] = bridge
    return bridge


async def send_or_edit(update: Update, text: str, keyboard: List[List[InlineKeyboardButton]]) -> None:
    """Answer a callback by editing its message, or a text message with a reply."""
    reply_markup = InlineKeyboardMarkup(keyboard)
    if update.callback_query:
        await update.callback_query.edit_message_text(text, reply_markup=reply_markup, parse_mode="HTML")
    else:
        await update.message.reply_text(text, reply_markup=reply_markup, parse_mode="HTML")


def status_badge(store: ProgressStore, message_id: int) -> str:
    """Menu badge for a message."""
    result = store.result_for(message_id)
    if store.is_completed(message_id) and result:
        return "✓" if result.correct else "✗"
    return "●"


def format_menu(catalog: Catalog, store: ProgressStore, items: List[MessageItem]) -> str:
    """Menu text: progress summary followed by a hint."""
    summary = store.summary(len(catalog))
    text = (
        "📱 <b>Smishing Defense Training</b>\n\n"
        f"Completed: {summary.completed_count}/{summary.total_count}\n"
        f"Correct: {summary.correct_count}\n"
        f"Accuracy: {summary.accuracy_percent}%\n\n"
    )
    if not items:
        text += "🔍 No messages found"
    else:
        text += "Pick a message to practice, or send some text to search."
    return text


def menu_keyboard(store: ProgressStore, items: List[MessageItem]) -> List[List[InlineKeyboardButton]]:
    keyboard = [
        [InlineKeyboardButton(
            f"{status_badge(store, item.id)} {item.sender}: {truncate_text(item.content, 30)}",
            callback_data=f"msg_{item.id}",
        )]
        for item in items[:settings.bot.menu_page_size]
    ]
    keyboard.append([InlineKeyboardButton(START_TRAINING, callback_data="train")])
    keyboard.append([
        InlineKeyboardButton(VIEW_STATISTICS, callback_data="stats"),
        InlineKeyboardButton(RESET_PROGRESS, callback_data="reset"),
    ])
    return keyboard


def format_message_card(controller: SessionController, item: MessageItem) -> str:
    text = (
        f"💬 <b>{html.escape(item.sender)}</b>\n\n"
        f"{html.escape(item.content)}"
    )
    if controller.is_sequential:
        text += f"\n\n<i>Message {controller.index + 1} of {controller.total}</i>"
    return text


def message_keyboard() -> List[List[InlineKeyboardButton]]:
    return [
        [InlineKeyboardButton(label, callback_data=f"act_{action.value}") for action, label in ACTION_BUTTONS],
        [InlineKeyboardButton(msg_back_to(MENU), callback_data="back_to_menu")],
    ]


def format_feedback(feedback: Feedback) -> str:
    return f"{FEEDBACK_ICONS[feedback.kind]} <b>{feedback.title}</b>\n\n{html.escape(feedback.text)}"


async def handle_start(update: Update, context: CallbackContext) -> int:
    """Start the conversation: ask for a name on the first visit, else show the menu."""
    await log_received(update, "start")
    context.user_data.pop("session", None)

    provider = get_identity_provider(update)
    if provider.exists():
        return await show_menu(update, context)

    await update.message.reply_text(
        "Welcome to Smishing Defense Training! 👋\n\n"
        "Please enter your name (optional):",
        reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton(SKIP, callback_data="skip_name")]]),
    )
    return ASKING_NAME


async def handle_name(update: Update, context: CallbackContext) -> int:
    """Create the device identity from the name the user typed."""
    await log_received(update, "name")
    identity = get_identity_provider(update).get_or_create_identity(update.message.text)
    await update.message.reply_text(f"Nice to meet you, {identity.user_name}!")
    return await show_menu(update, context)


async def handle_skip_name(update: Update, context: CallbackContext) -> int:
    """Create the device identity with the default name."""
    await update.callback_query.answer()
    await log_received(update, "name")
    get_identity_provider(update).get_or_create_identity()
    return await show_menu(update, context)


async def handle_forget(update: Update, context: CallbackContext) -> int:
    """Forget this device's identity; progress stays until reset."""
    await log_received(update, "forget")
    context.user_data.pop("session", None)
    get_identity_provider(update).clear()
    await update.message.reply_text("Your identity was cleared. Send /start to begin again.")
    return ConversationHandler.END


async def show_menu(update: Update, context: CallbackContext, search: str = "") -> int:
    """Show the message list with the progress summary.

    The progress store is read again on every call, so coming back from a
    training session always shows fresh results.
    """
    try:
        catalog = await CatalogService().load()
    except CatalogLoadError:
        await send_or_edit(update, ERR_MSG_CATALOG, [])
        return ConversationHandler.END

    store = get_progress_store(update)
    items = catalog.search(search)
    await send_or_edit(update, format_menu(catalog, store, items), menu_keyboard(store, items))
    return MAIN_MENU


async def handle_search(update: Update, context: CallbackContext) -> int:
    """Filter the menu by the text the user sent."""
    await log_received(update, "search")
    return await show_menu(update, context, search=update.message.text.strip())


async def handle_callback(update: Update, context: CallbackContext) -> int:
    """Handle callback queries from the menu keyboard."""
    query = update.callback_query
    await query.answer()

    await log_received(update, "callback")

    if query.data == "train":
        return await start_session(update, context, SessionMode.SEQUENTIAL)
    elif query.data.startswith("msg_"):
        try:
            message_id = int(query.data[len("msg_"):])
        except ValueError:
            logger.warning(f"Bad message reference: {query.data}")
            return await show_menu(update, context)
        return await start_session(update, context, SessionMode.SINGLE, message_id)
    elif query.data == "stats":
        return await show_statistics(update, context)
    elif query.data == "reset":
        return await confirm_reset(update, context)
    elif query.data == "reset_confirm":
        get_progress_store(update).reset()
        return await show_menu(update, context)
    elif query.data == "back_to_menu":
        return await show_menu(update, context)

    return MAIN_MENU


async def start_session(update: Update, context: CallbackContext, mode: SessionMode,
                        target_message_id: Optional[int] = None) -> int:
    """Create a session controller for this chat and show its first message."""
    identity = get_identity_provider(update).get_or_create_identity()
    controller = SessionController(
        identity=identity,
        progress_store=get_progress_store(update),
        sync_bridge=get_sync_bridge(context),
        mode=mode,
        target_message_id=target_message_id,
    )
    try:
        await controller.load(CatalogService().load)
    except CatalogLoadError:
        context.user_data.pop("session", None)
        await send_or_edit(update, ERR_MSG_CATALOG, KB_BACK_TO_MENU)
        return MAIN_MENU

    context.user_data["session"] = controller
    return await send_current_message(update, controller)


async def send_current_message(update: Update, controller: SessionController) -> int:
    """Present the current message, or the completion card at the end of the pass."""
    item = controller.present()
    if item is None:
        return await send_completion(update, controller)
    await send_or_edit(update, format_message_card(controller, item), message_keyboard())
    return TRAINING


async def send_completion(update: Update, controller: SessionController) -> int:
    result = controller.result()
    text = (
        "🏁 <b>Training Complete!</b>\n\n"
        f"You correctly identified {result.score} out of {result.total} messages ({result.percentage}%).\n\n"
        f"{result.performance_message}"
    )
    await send_or_edit(update, text, [
        [InlineKeyboardButton("🔄 Restart", callback_data="restart")],
        [InlineKeyboardButton(msg_back_to(MENU), callback_data="back_to_menu")],
    ])
    return TRAINING


async def handle_training(update: Update, context: CallbackContext) -> int:
    """Handle the buttons of a running training session."""
    query = update.callback_query
    await query.answer()

    await log_received(update, "training")

    controller: Optional[SessionController] = context.user_data.get("session")
    if controller is None or query.data == "back_to_menu":
        context.user_data.pop("session", None)
        return await show_menu(update, context)

    try:
        if query.data.startswith("act_"):
            feedback = controller.decide(Action(query.data[len("act_"):]))
            button = "👍 Got it" if feedback.kind == FeedbackKind.QUESTION else "➡️ Continue"
            await send_or_edit(update, format_feedback(feedback), [
                [InlineKeyboardButton(button, callback_data="continue")],
            ])
            return TRAINING
        elif query.data == "continue":
            state = controller.acknowledge()
            if state == SessionState.AWAITING_DECISION:
                item = controller.current_item
                await send_or_edit(update, format_message_card(controller, item), message_keyboard())
                return TRAINING
            if state == SessionState.COMPLETE and controller.returned_to_caller:
                context.user_data.pop("session", None)
                return await show_menu(update, context)
            return await send_current_message(update, controller)
        elif query.data == "restart":
            controller.restart()
            return await send_current_message(update, controller)
    except SessionStateError as e:
        # Buttons of an older card pressed again
        logger.warning(f"Ignoring stale button {query.data} in chat {update.effective_chat.id}: {e}")
    except ValueError:
        logger.warning(f"Unknown training callback: {query.data}")

    return TRAINING


async def show_statistics(update: Update, context: CallbackContext) -> int:
    """Show local progress and the totals kept by the stats server."""
    identity = get_identity_provider(update).get_or_create_identity()
    try:
        catalog = await CatalogService().load()
        total = len(catalog)
    except CatalogLoadError:
        total = 0
    store = get_progress_store(update)
    summary = store.summary(total)

    message = (
        f"📊 <b>Your Statistics</b> ({html.escape(identity.user_name)})\n\n"
        f"Messages Completed: {summary.completed_count}/{summary.total_count}\n"
        f"Correct Answers: {summary.correct_count}\n"
        f"Accuracy: {summary.accuracy_percent}%\n\n"
        f"{progress_remark(summary.accuracy_percent, summary.completed_count, summary.total_count)}\n\n"
    )

    try:
        record = await get_sync_bridge(context).client.get_user_stats(identity.user_id)
    except TransientSyncFailure as e:
        logger.warning(f"Server statistics unavailable: {e}")
        message += "🌐 Server statistics are unavailable right now."
    else:
        if record is None:
            message += "🌐 No attempts recorded on the server yet."
        else:
            server = record["summary"]
            answered = server["totalAttempts"] - server["questionsAsked"]
            accuracy = percent(server["correctAnswers"], answered)
            message += (
                "🌐 <b>All devices</b>\n"
                f"Total Attempts: {server['totalAttempts']}\n"
                f"Correct Answers: {server['correctAnswers']}\n"
                f"Questions Asked: {server['questionsAsked']}\n"
                f"Accuracy: {accuracy}%"
            )

    await send_or_edit(update, message, KB_BACK_TO_MENU)
    return MAIN_MENU


async def confirm_reset(update: Update, context: CallbackContext) -> int:
    await send_or_edit(update, "Are you sure you want to reset all progress? This cannot be undone.", [
        [InlineKeyboardButton("Yes, reset", callback_data="reset_confirm"),
         InlineKeyboardButton("Cancel", callback_data="back_to_menu")],
    ])
    return MAIN_MENU
