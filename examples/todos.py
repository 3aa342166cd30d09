"""
Todo list form walk-through.

Shows a form with a dynamic list driven from both ends: the client side
``Form`` handles events and intents, the server side ``parse`` and
``Submission.reply`` handle the submitted form data, and the reply is
merged back into the form.

Run with ``python examples/todos.py``.
"""

import logging

from formstate import Form, FormConfig, ValidationTrigger, form_state_input, get_input_props, parse

logger = logging.getLogger(__name__)


def resolve_todos(payload):
    """Schema stand-in: a title and at least one task with content."""
    error = {}
    if not payload.get("title"):
        error["title"] = ["Title is required"]
    tasks = payload.get("tasks") or []
    if not tasks:
        error["tasks"] = ["Add at least one task"]
    for index, task in enumerate(tasks):
        if not (task or {}).get("content"):
            error[f"tasks[{index}].content"] = ["Content is required"]
    if error:
        return {"error": error}
    return {"value": payload}


def validate_todos(form_data, request):
    """Client side adapter reusing the server resolver."""
    return parse(form_data, resolve=resolve_todos)


def render(form):
    """Print the controls a template would render."""
    fields = form.fields
    print(get_input_props(fields.title))
    for task in fields.tasks.get_field_list():
        print(task.key, get_input_props(task.content), task.content.error)
    print(form_state_input(form=form))


def main():
    logging.basicConfig(level=logging.INFO)

    form = Form(
        "todos",
        default_value={"title": "", "tasks": [{"content": ""}]},
        on_validate=validate_todos,
        config=FormConfig(should_validate=ValidationTrigger.ON_BLUR),
    )

    form.handle_input({"title": "Groceries", "tasks[0].content": ""}, "title")
    form.handle_blur({"title": "Groceries", "tasks[0].content": ""}, "title")

    # The "Add task" button submits an insert intent instead of the form
    outcome = form.handle_submit(
        {"title": "Groceries", "tasks[0].content": "Milk"},
        submitter=form.insert.get_button_props(name="tasks", default_value={"content": ""}),
    )
    logger.info(f"Intent {outcome.intent.type.value}: status={outcome.status}")
    render(form)

    # A real submit posts the form data (with the hidden state control) to the server
    form_data = [
        ("title", "Groceries"),
        ("tasks[0].content", "Milk"),
        ("tasks[1].content", ""),
        ("__state__", form.get_serialized_state()),
    ]
    submission = parse(form_data, resolve=resolve_todos)
    reply = submission.reply()
    logger.info(f"Server replied {reply.status}: {reply.error}")

    form.sync(last_result=reply.to_dict())
    render(form)


if __name__ == "__main__":
    main()
