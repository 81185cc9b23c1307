"""GenForge: prompt-to-project generation service.

Turns a natural-language prompt into a multi-file project by asking a
language model for a ``{path: content}`` JSON object, recovering that object
from whatever the model actually returned, writing it to a project store and
packaging it as a zip archive.

Usage::

    from genforge.config import Config
    from genforge.pipeline import GenerationPipeline

    pipeline = GenerationPipeline.from_config(Config.from_env())
    outcome = await pipeline.generate("A landing page for a bakery")
    print(outcome.project_id, outcome.file_count)
"""

__version__ = "0.1.0"
