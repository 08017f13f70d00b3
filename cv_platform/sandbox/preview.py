"""
Preview Document - a self-contained HTML page that runs a project snapshot.

This module handles:
- Loading the whitelisted libraries, Tailwind and Babel from CDNs
- Embedding the compiled modules and project stylesheets
- The runtime: per-module compilation with Babel, explicit symbol resolution
  with stub fallbacks, an error boundary and a diagnostic overlay that tells
  compilation errors apart from execution errors
- The visual-edit script

The page is meant to be loaded into a sandboxed iframe (srcdoc). It only talks
to its host through window messages.
"""

import json
import re
from typing import Mapping, Optional

import structlog

from cv_platform.sandbox.compiler import CompiledBundle, compile_project
from cv_platform.sandbox.libraries import LibraryRegistry, get_registry
from cv_platform.sandbox.visual_edit import render_visual_edit_script


logger = structlog.get_logger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

TAILWIND_URL = "https://cdn.tailwindcss.com"
BABEL_URL = "https://unpkg.com/@babel/standalone@7.23.5/babel.min.js"

OVERLAY_COMPILE_LABEL = "Compilation Error (Syntax)"
OVERLAY_RUNTIME_LABEL = "Execution Error"

# Elements rendered by the motion stand-in when framer-motion is unavailable
MOTION_TAGS = (
    "a", "article", "aside", "button", "circle", "div", "footer", "form", "h1", "h2", "h3",
    "h4", "h5", "h6", "header", "img", "input", "label", "li", "main", "nav", "ol", "p",
    "path", "section", "span", "svg", "textarea", "ul",
)

OVERLAY_STYLE = """
#__preview_overlay { display: none; position: fixed; inset: 0; z-index: 2147483647;
  background: rgba(15, 23, 42, 0.94); color: #f8fafc; padding: 24px; overflow: auto;
  font: 13px/1.5 ui-monospace, SFMono-Regular, Menlo, monospace; }
#__preview_overlay .label { display: inline-block; background: #dc2626; color: #fff;
  padding: 2px 8px; border-radius: 4px; font-weight: 600; margin-bottom: 12px; }
#__preview_overlay .file { color: #fbbf24; margin-bottom: 8px; }
#__preview_overlay pre { white-space: pre-wrap; margin: 0; }
"""

RUNTIME_SCRIPT = r"""
(function () {
  var bundle = JSON.parse(document.getElementById('__preview_bundle').textContent);
  var COMPILE_LABEL = '__COMPILE_LABEL__';
  var RUNTIME_LABEL = '__RUNTIME_LABEL__';
  var MOTION_TAGS = __MOTION_TAGS__;
  var MOTION_PROPS = ['initial', 'animate', 'exit', 'whileHover', 'whileTap', 'whileInView', 'whileFocus',
    'whileDrag', 'variants', 'transition', 'viewport', 'layout', 'layoutId', 'drag', 'dragConstraints',
    'onAnimationComplete', 'custom', 'style'];
  var cache = {};
  var iconNames = {};
  bundle.iconNames.forEach(function (name) { iconNames[name] = true; });

  function CompileError(message, file) {
    this.name = 'CompileError';
    this.message = message;
    this.file = file || null;
  }
  CompileError.prototype = Object.create(Error.prototype);

  function showOverlay(kind, message, file) {
    var el = document.getElementById('__preview_overlay');
    if (!el) {
      el = document.createElement('div');
      el.id = '__preview_overlay';
      document.body.appendChild(el);
    }
    el.innerHTML = '';
    var label = document.createElement('div');
    label.className = 'label';
    label.textContent = kind === 'compile' ? COMPILE_LABEL : RUNTIME_LABEL;
    el.appendChild(label);
    if (file) {
      var where = document.createElement('div');
      where.className = 'file';
      where.textContent = file;
      el.appendChild(where);
    }
    var pre = document.createElement('pre');
    pre.textContent = String(message);
    el.appendChild(pre);
    el.style.display = 'block';
    try {
      window.parent.postMessage({ type: 'PREVIEW_ERROR', kind: kind, message: String(message), file: file || null }, '*');
    } catch (e) {}
  }

  function report(error) {
    var compile = error instanceof CompileError;
    showOverlay(compile ? 'compile' : 'runtime', error && error.message ? error.message : String(error), error && error.file);
  }

  // ---------------------------------------------------------------- stubs

  function componentStub(name) {
    var Stub = function (props) {
      return React.createElement('span', {
        'data-preview-stub': name,
        title: name + ' is not available in the preview',
        style: { display: 'inline-flex', alignItems: 'center', padding: '2px 6px', border: '1px dashed #94a3b8',
          borderRadius: '4px', color: '#64748b', fontSize: '12px' }
      }, props && props.children ? props.children : name);
    };
    Stub.displayName = name;
    return Stub;
  }

  function iconStub(name) {
    var Icon = function (props) {
      var size = (props && props.size) || 24;
      return React.createElement('svg', {
        width: size, height: size, viewBox: '0 0 24 24', fill: 'none', stroke: 'currentColor', strokeWidth: 2,
        className: props && props.className, 'data-preview-stub': name
      }, React.createElement('circle', { cx: 12, cy: 12, r: 9 }));
    };
    Icon.displayName = name;
    return Icon;
  }

  function passThrough(props) {
    return React.createElement(React.Fragment, null, props.children);
  }

  function hookStub() {
    return [undefined, function () {}];
  }

  function valueStub() {
    return undefined;
  }

  var motionStandIn = null;
  function motionFallback() {
    if (motionStandIn) return motionStandIn;
    motionStandIn = {};
    MOTION_TAGS.forEach(function (tag) {
      motionStandIn[tag] = React.forwardRef(function (props, ref) {
        var clean = { ref: ref };
        Object.keys(props).forEach(function (key) {
          if (MOTION_PROPS.indexOf(key) === -1) clean[key] = props[key];
        });
        return React.createElement(tag, clean);
      });
    });
    return motionStandIn;
  }

  function fallback(name, libraryKind) {
    if (/^use[A-Z]/.test(name)) return hookStub;
    if (name === 'motion') return motionFallback();
    if (name === 'AnimatePresence' || name === 'LayoutGroup' || name === 'MotionConfig') return passThrough;
    if (/^[A-Z]/.test(name)) return (libraryKind === 'icons' || iconNames[name]) ? iconStub(name) : componentStub(name);
    return valueStub;
  }

  // ----------------------------------------------------------- resolution

  // Namespace imports: members the object lacks resolve to stubs
  function namespace(target, libraryKind) {
    var stubs = {};
    return new Proxy(target, {
      get: function (obj, key) {
        if (typeof key !== 'string' || key in obj || key === 'then' || key === '__esModule') return obj[key];
        if (!stubs[key]) stubs[key] = fallback(key, libraryKind);
        return stubs[key];
      }
    });
  }

  function libraryGlobal(specifier) {
    var entry = bundle.libraries[specifier];
    return entry && entry.global ? window[entry.global] : undefined;
  }

  function resolveLibrary(binding) {
    var lib = libraryGlobal(binding.module);
    if (binding.name === '*') {
      return namespace(lib || (binding.module === 'framer-motion' ? { motion: motionFallback() } : {}), binding.libraryKind);
    }
    if (binding.name === 'default') return lib ? (lib['default'] || lib) : fallback(binding.local, binding.libraryKind);
    var value = lib ? lib[binding.name] : undefined;
    return value !== undefined ? value : fallback(binding.name, binding.libraryKind);
  }

  function resolveGlobal(binding) {
    for (var i = 0; i < bundle.order.length; i++) {
      var lib = libraryGlobal(bundle.order[i]);
      if (lib && lib[binding.name] !== undefined) return lib[binding.name];
    }
    return fallback(binding.name, null);
  }

  function baseName(path) {
    return path.split('/').pop().replace(/\.[^.]+$/, '');
  }

  function resolveModule(binding) {
    var exports = requireModule(binding.module);
    if (binding.name === '*') return namespace(exports, null);
    var value = exports[binding.name];
    if (value !== undefined) return value;
    return fallback(binding.name === 'default' ? baseName(binding.module) : binding.name, null);
  }

  function resolve(binding) {
    switch (binding.kind) {
      case 'library': return resolveLibrary(binding);
      case 'module': return resolveModule(binding);
      case 'global': return resolveGlobal(binding);
      default:
        if (binding.name === '*') return namespace({}, binding.libraryKind);
        return fallback(binding.name === 'default' ? binding.local : binding.name, binding.libraryKind);
    }
  }

  function requireModule(path) {
    if (cache[path]) return cache[path].exports;
    var record = { exports: {} };
    cache[path] = record;
    var source = bundle.modules[path];
    if (!source) return record.exports;
    if (source.error) throw new CompileError(source.error, path);

    var factory;
    try {
      var compiled = Babel.transform(source.code, {
        filename: path,
        presets: [['typescript', { isTSX: true, allExtensions: true }], 'react']
      }).code;
      factory = new Function('__exports', '__resolve', compiled);
    } catch (e) {
      throw new CompileError(e.message, path);
    }
    factory(record.exports, resolve);
    return record.exports;
  }

  // ---------------------------------------------------------------- mount

  window.addEventListener('error', function (event) {
    report(event.error || new Error(event.message));
  });
  window.addEventListener('unhandledrejection', function (event) {
    report(event.reason || new Error('Unhandled promise rejection'));
  });

  if (typeof React === 'undefined' || typeof ReactDOM === 'undefined' || typeof Babel === 'undefined') {
    showOverlay('runtime', 'The preview runtime failed to load (React, ReactDOM or Babel is missing).', null);
    return;
  }

  class PreviewErrorBoundary extends React.Component {
    constructor(props) {
      super(props);
      this.state = { error: null };
    }
    static getDerivedStateFromError(error) {
      return { error: error };
    }
    componentDidCatch(error) {
      report(error);
    }
    render() {
      return this.state.error ? null : this.props.children;
    }
  }

  try {
    if (bundle.app) {
      var App = resolveModule({ kind: 'module', module: bundle.app, name: 'default' });
      ReactDOM.createRoot(document.getElementById('root')).render(
        React.createElement(PreviewErrorBoundary, null, React.createElement(App))
      );
    } else if (bundle.entry) {
      requireModule(bundle.entry);
    } else {
      showOverlay('runtime', 'No App component or entry module found.', null);
    }
  } catch (e) {
    report(e);
  }
})();
"""


# =============================================================================
# DOCUMENT
# =============================================================================

def _embed_json(data) -> str:
    """JSON safe to place inside a <script> element."""
    return json.dumps(data).replace("<", "\\u003c").replace("\u2028", "\\u2028").replace("\u2029", "\\u2029")


def _embed_css(css: str) -> str:
    return re.sub(r"</(style)", r"<\\/\1", css, flags=re.IGNORECASE)


def render_runtime_script() -> str:
    return (
        RUNTIME_SCRIPT
        .replace("__COMPILE_LABEL__", OVERLAY_COMPILE_LABEL)
        .replace("__RUNTIME_LABEL__", OVERLAY_RUNTIME_LABEL)
        .replace("__MOTION_TAGS__", json.dumps(list(MOTION_TAGS)))
    )


def build_preview_document(
    files: Mapping[str, str],
    registry: Optional[LibraryRegistry] = None,
    title: str = "Preview",
) -> str:
    """
    Build the preview page for a project snapshot.

    Args:
        files: Read-only ProjectFileSet snapshot
        registry: Library whitelist (global registry by default)
        title: Document title

    Returns:
        Complete HTML document
    """
    registry = registry or get_registry()
    bundle: CompiledBundle = compile_project(files, registry)

    scripts = [f'<script src="{TAILWIND_URL}"></script>']
    scripts.extend(f'<script crossorigin src="{url}"></script>' for url in registry.script_urls())
    scripts.append(f'<script src="{BABEL_URL}"></script>')

    styles = [
        f'<style type="text/tailwindcss" data-path="{path}">\n{_embed_css(css)}\n</style>'
        for path, css in bundle.stylesheets.items()
    ]

    logger.debug("preview_document_built", modules=len(bundle.modules), stylesheets=len(styles))

    head = "\n".join(scripts + styles)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>{title}</title>
{head}
<style>{OVERLAY_STYLE}</style>
</head>
<body>
<div id="root"></div>
<div id="__preview_overlay"></div>
<script type="application/json" id="__preview_bundle">{_embed_json(bundle.to_runtime(registry))}</script>
<script>{render_visual_edit_script()}</script>
<script>{render_runtime_script()}</script>
</body>
</html>
"""
