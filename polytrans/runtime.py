"""
Runtime wiring.

Runtime owns every registry and service of the engine. Built-in providers,
chat vendors, assistant vendors and workflow step kinds are registered by
explicit calls in create_runtime(); nothing is registered at import time.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from polytrans.ai.assistant_clients import AssistantClientFactory, GeminiAgentClient, OpenAIAssistantClient
from polytrans.ai.chat_clients import ChatClientFactory, ClaudeChatClient, GeminiChatClient, OpenAIChatClient
from polytrans.assistants.executor import AssistantExecutor
from polytrans.assistants.manager import AssistantManager
from polytrans.config import get_background_setting, initialize_app
from polytrans.core import database as db
from polytrans.core.stores import ConfigStore, JobStore, SqliteJobStore
from polytrans.jobs.dispatcher import BackgroundJobDispatcher
from polytrans.jobs.launchers import JobLauncher, select_launchers
from polytrans.jobs.poller import JobPoller
from polytrans.jobs.worker import JobWorker
from polytrans.logger import get_logger
from polytrans.providers.google import GoogleProvider
from polytrans.providers.registry import ProviderRegistry
from polytrans.translation.manager import TranslationManager
from polytrans.translation.path_executor import TranslationPathExecutor
from polytrans.translation.path_validator import PathValidator
from polytrans.translation.step_executor import StepExecutor
from polytrans.workflows.engine import WorkflowEngine
from polytrans.workflows.manager import WorkflowManager
from polytrans.workflows.output_processor import WorkflowOutputProcessor
from polytrans.workflows.steps import AiAssistantStep, ManagedAssistantStep, PredefinedAssistantStep
from polytrans.workflows.storage import WorkflowStorage
from polytrans.workflows.variables import VariableManager

logger = get_logger(__name__)

LauncherFactory = Callable[["Runtime"], List[JobLauncher]]


def default_launchers(runtime: "Runtime") -> List[JobLauncher]:
    return select_launchers(
        runtime.config_store.load(),
        store_shared=getattr(runtime.job_store, "shared", True),
        db_file=lambda: str(db.DB_FILE),
        run_inline=runtime.worker.run,
    )


class Runtime:

    def __init__(self, config_store: ConfigStore, job_store: JobStore, providers: ProviderRegistry,
                 chat_factory: ChatClientFactory, assistant_factory: AssistantClientFactory,
                 launcher_factory: Optional[LauncherFactory] = None):
        self.config_store = config_store
        self.job_store = job_store
        self.providers = providers
        self.chat_factory = chat_factory
        self.assistant_factory = assistant_factory

        self.assistants = AssistantManager(known_providers=chat_factory.vendor_ids())
        self.assistant_executor = AssistantExecutor(self.assistants, chat_factory)
        self.validator = PathValidator(providers, assistant_factory, self.assistants, chat_factory)
        self.step_executor = StepExecutor(providers, assistant_factory, self.assistant_executor)
        self.path_executor = TranslationPathExecutor(self.validator, self.step_executor)

        variables = VariableManager()
        self.workflow_engine = WorkflowEngine(
            step_kinds=[
                AiAssistantStep(chat_factory, variables),
                PredefinedAssistantStep(assistant_factory, variables),
                ManagedAssistantStep(self.assistant_executor, variables),
            ],
            output_processor=WorkflowOutputProcessor(config_store),
            variables=variables,
        )
        self.workflow_storage = WorkflowStorage()

        self.worker = JobWorker(self)
        config = config_store.load()
        self.dispatcher = BackgroundJobDispatcher(
            job_store,
            (launcher_factory or default_launchers)(self),
            job_ttl=get_background_setting(config, "job_ttl"),
        )
        self.workflow_manager = WorkflowManager(self.workflow_storage, self.workflow_engine, self.dispatcher, job_store)
        self.translation_manager = TranslationManager(self.path_executor, self.workflow_manager)

    def load_config(self) -> Dict[str, Any]:
        return self.config_store.load()

    def poller(self, config: Optional[Dict[str, Any]] = None) -> JobPoller:
        config = config if config is not None else self.load_config()
        return JobPoller(
            self.job_store,
            attempts=get_background_setting(config, "poll_attempts"),
            interval=get_background_setting(config, "poll_interval"),
        )


def register_builtins(providers: ProviderRegistry, chat_factory: ChatClientFactory,
                      assistant_factory: AssistantClientFactory) -> None:
    providers.register(GoogleProvider())

    chat_factory.register(OpenAIChatClient)
    chat_factory.register(ClaudeChatClient)
    chat_factory.register(GeminiChatClient)

    # Order matters: the first client class that supports an id handles it
    assistant_factory.register(OpenAIAssistantClient)
    assistant_factory.register(GeminiAgentClient)


def create_runtime(job_store: Optional[JobStore] = None,
                   launcher_factory: Optional[LauncherFactory] = None) -> Runtime:
    """Initialize storage and build a Runtime with the built-in backends."""
    initialize_app()
    providers = ProviderRegistry()
    chat_factory = ChatClientFactory()
    assistant_factory = AssistantClientFactory()
    register_builtins(providers, chat_factory, assistant_factory)
    return Runtime(
        config_store=ConfigStore(),
        job_store=job_store or SqliteJobStore(),
        providers=providers,
        chat_factory=chat_factory,
        assistant_factory=assistant_factory,
        launcher_factory=launcher_factory,
    )
