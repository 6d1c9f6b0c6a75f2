"""Model picker — paginated inline keyboard behind /models.

The model list is remembered per user (owner key = user id) for ten
minutes; buttons carry only the model's global index. Tapping a model
sets the user's preference, the arrows re-render another page.

Key functions: send_model_menu(), handle_model_callback().
"""

import logging

from telegram import CallbackQuery, InlineKeyboardMarkup, Message

from ..opencode_client import ModelInfo
from ..session import SessionManager
from .callback_data import CB_MODEL_PAGE, CB_MODEL_PICK
from .message_sender import safe_edit, safe_reply

logger = logging.getLogger(__name__)


def _menu(
    sessions: SessionManager, user_id: int, models: list[ModelInfo], page: int
) -> tuple[str, InlineKeyboardMarkup]:
    menus = sessions.model_menus
    current = sessions.get_user_model(user_id)
    shown = menus.page_indices(len(models), page)
    text = f"**Available Models** ({len(models)} total"
    if len(shown) < len(models) and len(shown) > 0:
        text += f", showing {shown.start + 1}-{shown.stop}"
    text += f")\n\nTap a model to select it.\n\nCurrent: `{current}`"
    keyboard = menus.render_page(models, page, selected=lambda m: m.id == current)
    return text, keyboard


async def send_model_menu(
    message: Message,
    sessions: SessionManager,
    user_id: int,
    models: list[ModelInfo],
) -> None:
    sessions.model_menus.remember(str(user_id), models)
    text, keyboard = _menu(sessions, user_id, models, 0)
    await safe_reply(message, text, reply_markup=keyboard)


async def handle_model_callback(
    query: CallbackQuery, user_id: int, data: str, sessions: SessionManager
) -> None:
    """Handle a model pick or page button."""
    menus = sessions.model_menus
    owner = str(user_id)

    if data.startswith(CB_MODEL_PAGE):
        page = menus.parse_index(data, CB_MODEL_PAGE)
        models = menus.stored(owner)
        if page is None or models is None:
            await query.answer("Menu expired. Run /models again.", show_alert=True)
            return
        text, keyboard = _menu(sessions, user_id, models, page)
        await safe_edit(query, text, reply_markup=keyboard)
        await query.answer()
        return

    index = menus.parse_index(data, CB_MODEL_PICK)
    model = menus.resolve(owner, index) if index is not None else None
    if model is None:
        await query.answer("Model not found. Try /models again.", show_alert=True)
        return
    sessions.set_user_model(user_id, model.id)
    menus.forget(owner)
    await safe_edit(
        query,
        f"**Model Changed**\n\n**{model.name}**\n`{model.id}`\n\n"
        "Your next message will use this model.",
    )
    await query.answer(f"Selected {model.name}")
