"""
Example 01: Branching Chat
==========================

Demonstrates the core ChatService workflow:
- Sending messages into an implicitly created thread
- Forking an alternate continuation with create_branch()
- Editing a user message, which prunes every reply beneath it
- Excluding a message from future context
- Rendering the thread tree

Run without an API key:
    RAMUS_MOCK_LLM=1 uv run python examples/01_branching_chat.py

Run with a real LLM (set your API key first):
    OPENAI_API_KEY=sk-... uv run python examples/01_branching_chat.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path when running directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def print_tree(nodes, indent: int = 0) -> None:
    for node in nodes:
        marker = "" if node.message.is_context else "  (excluded)"
        print(f"{'  ' * indent}- [{node.message.role}] {node.message.content[:60]}{marker}")
        print_tree(node.children, indent + 1)


async def main() -> None:
    from ramus import ChatService, ContextConfig, RamusConfig

    print("=== Ramus Branching Chat Example ===\n")

    config = RamusConfig(context=ContextConfig(max_context_tokens=4_000))

    async with ChatService.open(config=config, db_path="/tmp/ramus_example_01.db") as chat:
        first = await chat.send_message(
            "Suggest a name for a hiking club.",
            system_prompt="Answer in one sentence.",
        )
        print(f"Thread created: {first.thread_id}")
        print(f"Reply: {first.text}\n")

        follow_up = await chat.send_message(
            "Make it sound more adventurous.",
            thread_id=first.thread_id,
            parent_id=first.assistant_message_id,
        )
        if follow_up.generation_error:
            print(f"Generation failed: {follow_up.generation_error.message}")

        # Ask the same follow-up a different way, as a sibling branch.
        branch = await chat.create_branch(
            follow_up.user_message_id, "Make it sound more relaxed.", regenerate=True
        )
        print(f"Branch created: {branch.message_id}")

        # Rewrite the opening question; both branches above are pruned.
        edit = await chat.edit_message(
            first.user_message_id, "Suggest a name for a cycling club.", regenerate=True
        )
        print(f"Edit removed {edit.deleted_descendant_count} messages\n")

        if edit.generation is not None and edit.generation.ok:
            await chat.set_message_context_flag(edit.generation.assistant_message_id, False)

        result = await chat.get_thread_tree(first.thread_id)
        print(f"Thread: {result.thread.name}")
        print_tree(result.tree)

    print("\nService closed cleanly.")


if __name__ == "__main__":
    asyncio.run(main())
