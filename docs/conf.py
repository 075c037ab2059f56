# Sphinx configuration file for agent-workflow-engine.
# Build with: sphinx-build -b html docs docs/_build (needs the `docs` extra).

import os
import sys
sys.path.insert(0, os.path.abspath('../src'))

from agent_workflow_engine import __version__  # noqa: E402

project = 'Agent Workflow Engine'
copyright = '2026, Trickl'
author = 'Trickl'
release = __version__
version = '.'.join(__version__.split('.')[:2])

root_doc = 'index'

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx.ext.intersphinx',
    'sphinx_autodoc_typehints',
]

templates_path = ['_templates']
exclude_patterns = ['_build', 'Thumbs.db', '.DS_Store']

html_theme = 'sphinx_rtd_theme'
html_static_path = []

# Autodoc settings; api.rst lists the documented modules.
autodoc_default_options = {
    'members': True,
    'member-order': 'bysource',
    'undoc-members': True,
    'show-inheritance': True,
    'exclude-members': '__weakref__, model_config, model_fields',
}
autodoc_mock_imports = ['llama_cpp']
autodoc_typehints = 'description'
always_document_param_types = True

# Napoleon settings
napoleon_google_docstring = True
napoleon_numpy_docstring = False

# Intersphinx mapping
intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'pydantic': ('https://docs.pydantic.dev/latest', None),
    'fastapi': ('https://fastapi.tiangolo.com', None),
}
