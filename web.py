"""web.py

Gradio web interface for Sena.
Exposes the OrchestrationLoop over HTTP at 0.0.0.0:7860.

It is a single-user, local-first interface: the loop is a module-level
instance holding the conversation log, and the chat view is always rebuilt
from that log.

Exposed interfaces:
    demo (gr.Blocks): The Gradio application.  Launch via ``python web.py``.
"""

from __future__ import annotations

# Standard Library
import logging

# Third-Party Libraries
import gradio as gr
from dotenv import load_dotenv

# Local Modules
from sena.chat import OrchestrationLoop
from sena.config import SenaSettings
from sena.models import Message, Mode, Role

load_dotenv()

settings = SenaSettings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

loop: OrchestrationLoop = OrchestrationLoop.from_settings(settings)


# ---------------------------------------------------------------------------
# Gradio handler functions
# ---------------------------------------------------------------------------


def to_chat_history(messages: tuple[Message, ...]) -> list[dict[str, str]]:
    """Project the conversation log onto Gradio's role/content dicts.

    Tool results and tool-request placeholders are not shown.
    """
    history: list[dict[str, str]] = []
    for message in messages:
        if message.role not in (Role.USER, Role.ASSISTANT) or not message.content:
            continue
        history.append({"role": message.role.value, "content": message.content})
    return history


def respond(message: str) -> tuple[str, list[dict[str, str]]]:
    """Run a pass for ``message`` and return the refreshed chat view.

    Input submitted while a pass is in flight is ignored by the loop.

    Returns:
        A tuple of (cleared input text, chat history).
    """
    if message.strip():
        loop.start_pass(message)
    return "", to_chat_history(loop.messages)


def change_mode(choice: str) -> None:
    loop.set_mode(Mode.parse(choice))


# ---------------------------------------------------------------------------
# Gradio UI layout
# ---------------------------------------------------------------------------

with gr.Blocks(title="Sena") as demo:
    gr.Markdown(
        "# Sena\n"
        "*Your friendly AI assistant, designed to be simple and accessible.*"
    )

    chatbot = gr.Chatbot(
        value=to_chat_history(loop.messages),
        label="Sena",
        height=540,
        layout="bubble",
        buttons=["copy"],
    )

    with gr.Row():
        txt = gr.Textbox(
            placeholder="Type your message and press Enter…",
            show_label=False,
            container=False,
            scale=9,
            autofocus=True,
        )
        send_btn = gr.Button("Send", variant="primary", scale=1)

    with gr.Row():
        mode_select = gr.Dropdown(
            choices=[m.value for m in Mode],
            value=loop.mode.value,
            label="Conversation mode",
        )
        gr.Markdown(f"**Model:** `{settings.completion_model}`")

    # ------------------------------------------------------------------
    # Event wiring
    # ------------------------------------------------------------------
    txt.submit(respond, inputs=[txt], outputs=[txt, chatbot])
    send_btn.click(respond, inputs=[txt], outputs=[txt, chatbot])
    mode_select.change(change_mode, inputs=[mode_select])


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    demo.launch(
        server_name="0.0.0.0",
        server_port=7860,
        theme=gr.themes.Soft(),
    )
