"""
Gradio playground for the inference service.

This module provides a browser UI that talks to a running service
through InferenceClient: service status on one side, prompt and
generated text on the other.
"""

import os
from typing import Dict, Any, Tuple

from gpu_bridge.client import InferenceClient, is_error
from gpu_bridge.utils.logging_config import setup_logging

logger = setup_logging("demo_app")

# Shared client, created on first use
client: InferenceClient = None

EXAMPLE_PROMPT = (
    "Explain the benefits of using virtual machines for development "
    "in three sentences:"
)


def get_client() -> InferenceClient:
    """Return the shared client."""
    global client
    if client is None:
        client = InferenceClient()
        logger.info(f"Demo client targeting {client.base_url}")
    return client


def format_status(health: Dict[str, Any], info: Dict[str, Any]) -> str:
    """Format health and info results as markdown for the status panel."""
    if is_error(health):
        return (
            f"### Service unreachable\n"
            f"- **Target**: `{get_client().base_url}`\n"
            f"- **Error**: {health['error']}"
        )

    if is_error(info):
        return f"### Service healthy\n- **Info**: unavailable ({info['error']})"

    return (
        f"### Service {info.get('status', 'unknown')}\n"
        f"- **Host**: {info.get('host', 'N/A')}\n"
        f"- **GPU**: {info.get('gpu', 'N/A')}\n"
        f"- **Model**: `{info.get('model', 'N/A')}`"
    )


def refresh_status() -> str:
    """Query /health and /info."""
    c = get_client()
    return format_status(c.health_check(), c.get_info())


def run_generation(prompt: str, max_length: float) -> Tuple[str, str]:
    """
    Run one generation.

    Returns:
        Tuple of (generated text, status line)
    """
    result = get_client().generate_text(prompt, max_length=int(max_length))

    if is_error(result):
        logger.error(f"Generation error: {result['error']}")
        return "", f"**Error**: {result['error']}"

    text = result["generated_text"]
    return text, f"Generated {len(text)} chars (max_length={int(max_length)})"


def create_demo():
    """Create and return the Gradio demo interface."""
    import gradio as gr

    with gr.Blocks(title="gpu-bridge Playground") as demo:
        gr.Markdown("""
        # gpu-bridge Playground
        Send prompts from the browser to the model served on the host.
        Target is set with `GPU_BRIDGE_HOST` / `GPU_BRIDGE_PORT`.
        ---
        """)

        with gr.Row():
            # Left: prompt and output
            with gr.Column(scale=3):
                prompt = gr.Textbox(
                    label="Prompt",
                    value=EXAMPLE_PROMPT,
                    lines=4
                )
                max_length = gr.Slider(
                    label="max_length (tokens, prompt included)",
                    minimum=1,
                    maximum=512,
                    value=200,
                    step=1
                )
                submit = gr.Button("Generate", variant="primary")
                output = gr.Textbox(label="Generated text", lines=10)
                result_line = gr.Markdown()

            # Right: service status
            with gr.Column(scale=2):
                gr.Markdown("## Service Status")
                status = gr.Markdown(value="*Press refresh to query the service.*")
                refresh = gr.Button("Refresh")

        submit.click(
            run_generation,
            inputs=[prompt, max_length],
            outputs=[output, result_line]
        )

        refresh.click(refresh_status, outputs=[status])
        demo.load(refresh_status, outputs=[status])

    return demo


def main():
    """Run the demo."""
    demo = create_demo()
    demo.launch(
        server_name="0.0.0.0",
        server_port=int(os.getenv("DEMO_PORT", "7860"))
    )


if __name__ == "__main__":
    main()
