#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Stage Bot Example

A small questionnaire: /start opens a stage for that chat and user, asks for
a name, an age and a favourite colour, then prints a summary and exits.

Run from project root:
    TELEGRAM_BOT_TOKEN=123:abc python examples/stage_bot.py
"""
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tgstage.core.stage import Stage
from tgstage.runner import run
from tgstage.transport import TelegramClient, command

client = TelegramClient()
# chat_id -> running questionnaire
stages: dict[int, Stage] = {}

ANSWERS = ("name", "age", "color")


def build_questionnaire(chat_id: int, user_id: int | None) -> Stage:
    stage = Stage(client, context={}, chat_id=chat_id, user_id=user_id)

    @stage.on("name", initial=True)
    async def ask_name(stage):
        await client.send_message(stage.chat_id, "Hi! What's your name?")

        @stage.await_response
        async def got_name(update):
            stage.context["name"] = update.message.text
            await stage.transition("age")

    @stage.on("age")
    async def ask_age(stage):
        await client.send_message(stage.chat_id, f"Nice to meet you, {stage.context['name']}. How old are you?")

        @stage.await_response
        async def got_age(update):
            text = (update.message.text or "").strip()
            if not text.isdigit():
                await client.send_message(stage.chat_id, "Please send a number.")
                await stage.transition("age")
                return
            stage.context["age"] = int(text)
            await stage.transition("color")

    @stage.on("color")
    async def ask_color(stage):
        await client.send_message(stage.chat_id, "Last one: what's your favourite colour?")

        @stage.await_response
        async def got_color(update):
            stage.context["color"] = update.message.text
            await stage.exit()

    @stage.on_exit
    async def summarize(context):
        if stages.get(chat_id) is stage:
            del stages[chat_id]
        if not all(key in context for key in ANSWERS):
            return
        await client.send_message(
            chat_id,
            f"Thanks! {context['name']}, {context['age']}, likes {context['color']}.",
        )

    return stage


async def on_start_command(update):
    message = update.message
    previous = stages.pop(message.chat.id, None)
    if previous is not None:
        await previous.exit()

    user_id = message.from_user.id if message.from_user else None
    stage = build_questionnaire(message.chat.id, user_id)
    stages[message.chat.id] = stage
    await stage.start()


client.events.subscribe(on_start_command, predicate=command("start"), group="commands")


if __name__ == "__main__":
    run(client)
