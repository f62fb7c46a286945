"""Orchestration agent package.

Modules:
    client: OrchestrationAgent, the bounded tool-calling turn loop with
        run / resume / cancel entry points.
    llm: LLM collaborator protocol and the Anthropic adapter.
    system_prompt: System prompt builder.
    tools: Tool definitions and registry exposed to the model.

Submodules are imported directly (``from src.orchestrator.agent.client
import OrchestrationAgent``) so that tool modules can be imported without
pulling in the loop.
"""
