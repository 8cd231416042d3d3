"""Prompt templates for the planner, assigner, executor and answerer roles."""
from __future__ import annotations

from orchestra.workforce.workspace import WorkforceTask, WorkspaceRecorder

PLANNER_INSTRUCTIONS = "You are a task planning specialist."
ASSIGNER_INSTRUCTIONS = "You are a task assignment specialist."
ANSWERER_INSTRUCTIONS = "You are a final answer extraction specialist."


def build_task_plan_prompt(recorder: WorkspaceRecorder) -> str:
    return f"""Split the given task into subtasks that the agents in the group can carry out.

<overall_task>
{recorder.overall_task}
</overall_task>

<available_agents>
{recorder.executor_agents_info}
</available_agents>

Rules:
1. Every subtask is short, specific and executable by one of the agents without further splitting
2. Match each subtask to what the agents are good at
3. Use 2-3 subtasks for simple tasks and 4-6 for complex ones
4. The last subtask turns the results into the exact format the task asks for

Wrap every subtask in its own task tag, in execution order, inside a single tasks tag."""


def build_task_check_prompt(recorder: WorkspaceRecorder, task: WorkforceTask) -> str:
    return f"""Evaluate whether a finished subtask achieved its goal within the overall task.

<overall_task>
{recorder.overall_task}
</overall_task>

<task_plan>
{recorder.formatted_task_plan}
</task_plan>

<current_task>
{task.name}
</current_task>

<current_task_description>
{task.description or ""}
</current_task_description>

<current_task_result>
{task.result or ""}
</current_task_result>

Explain your reasoning inside analysis tags, then give the verdict inside task_status tags.
The verdict is exactly one of: success, partial success, failed."""


def build_plan_update_prompt(recorder: WorkspaceRecorder, task: WorkforceTask) -> str:
    plan = recorder.formatted_task_plan_with_results()
    return f"""Decide whether the remaining plan still fits, given the progress so far.

<overall_task>
{recorder.overall_task}
</overall_task>

<previous_task_plan>
{chr(10).join(plan[: task.task_id])}
</previous_task_plan>

<unfinished_task_plan>
{chr(10).join(plan[task.task_id :])}
</unfinished_task_plan>

Answer inside choice tags with exactly one word:
- stop: the overall task is already accomplished
- update: the remaining tasks should change
- continue: the remaining tasks are still right

When you choose update, list the revised remaining tasks, each in its own task tag,
inside updated_unfinished_task_plan tags."""


def build_assign_prompt(recorder: WorkspaceRecorder, task: WorkforceTask) -> str:
    plan = "\n".join(recorder.formatted_task_plan_with_results())
    return f"""You coordinate a multi-step plan and pick the agent for the next step.

<overall_task>
{recorder.overall_task}
</overall_task>

<task_plan_with_status>
{plan}
</task_plan_with_status>

<available_agents>
{recorder.executor_agents_info}
</available_agents>

<next_task>
{task.name}
</next_task>

Choose exactly one of these agents: {recorder.executor_agents_names}

The chosen agent sees nothing but your description, so make it self-contained: include
all context, requirements and expected output.

Reply with the agent name inside selected_agent tags and the description inside
detailed_task_description tags, both wrapped in an assignment tag."""


def build_execute_prompt(recorder: WorkspaceRecorder, task: WorkforceTask, reflection: str = "") -> str:
    retry = ""
    if reflection:
        retry = f"""
A previous attempt failed. Learn from it and take a different path:
<previous_attempts_and_reflections>
{reflection}
</previous_attempts_and_reflections>
"""
    return f"""Finish your task without asking for confirmation or help.

<overall_task>
{recorder.overall_task}
</overall_task>

<overall_plan_to_solve_the_task>
{recorder.formatted_task_plan}
</overall_plan_to_solve_the_task>

<current_subtask>
<task_name>
{task.name}
</task_name>

<task_description>
{task.description or ""}
</task_description>
</current_subtask>
{retry}
Focus on the current subtask while keeping the overall task in mind."""


def build_execution_check_prompt(task: WorkforceTask) -> str:
    return f"""Check carefully whether you completed this task.

<task_name>
{task.name}
</task_name>

<task_description>
{task.description or ""}
</task_description>

A task is complete only when every requirement is met and nothing is left to do.
Answer yes or no inside task_check tags."""


def build_reflection_prompt(task: WorkforceTask) -> str:
    return f"""You did not manage to complete this task:

<task_name>
{task.name}
</task_name>

<task_description>
{task.description or ""}
</task_description>

Briefly state why the attempt failed, what to avoid next time and how you will approach the retry."""


def build_summary_prompt(task: WorkforceTask) -> str:
    return f"""Summarise what you accomplished for this task, without markdown.

<task_name>
{task.name}
</task_name>

<task_description>
{task.description or ""}
</task_description>

Cover the answer or solution, any files you created or changed, and the key results."""


def build_final_answer_prompt(recorder: WorkspaceRecorder) -> str:
    results = "\n".join(recorder.formatted_task_plan_with_results())
    return f"""I am solving a question:
<question>
{recorder.overall_task}
</question>

These are the subtasks and their results:
<task_execution_results>
{results}
</task_execution_results>

Do not solve the question again; extract the final answer from the results, in exactly the
format the question asks for and as concise as possible.

Explain your reasoning inside analysis tags and put the final answer inside answer tags."""
