# Configuration file for the Sphinx documentation builder.
project = 'domainssl'
copyright = '2026, domainssl'
author = 'domainssl'
release = '0.1.0'

extensions = ['sphinx.ext.autodoc', 'sphinx.ext.napoleon']

templates_path = ['_templates']
exclude_patterns = ['_build', 'Thumbs.db', '.DS_Store']

autodoc_mock_imports = ['gunicorn']
napoleon_numpy_docstring = True

html_theme = 'sphinx_rtd_theme'
html_static_path = ['_static']
