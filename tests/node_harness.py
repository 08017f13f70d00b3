"""Runs the preview's in-frame scripts under node with a minimal DOM and React."""

import json
import shutil
import subprocess

import pytest

from cv_platform.sandbox.compiler import compile_project
from cv_platform.sandbox.preview import render_runtime_script
from cv_platform.sandbox.visual_edit import render_visual_edit_script


requires_node = pytest.mark.skipif(shutil.which("node") is None, reason="node is not installed")


RUNTIME_SHIM = r"""
var posted = [];
var rendered = null;
var elements = {};

function makeElement(id) {
  return {
    id: id, style: {}, children: [], textContent: '', innerHTML: '',
    appendChild: function (child) { this.children.push(child); return child; }
  };
}

globalThis.window = globalThis;
window.parent = { postMessage: function (message) { posted.push(message); } };
window.addEventListener = function () {};
globalThis.document = {
  body: makeElement('body'),
  createElement: function () { return makeElement(null); },
  getElementById: function (id) {
    if (!elements[id]) elements[id] = makeElement(id);
    return elements[id];
  }
};

function Component(props) { this.props = props; }
globalThis.React = {
  Component: Component,
  Fragment: 'fragment',
  forwardRef: function (render) { return function (props) { return render(props, null); }; },
  createElement: function (type, props) {
    if (type === undefined || type === null) throw new Error('Element type is invalid: got ' + type);
    var children = Array.prototype.slice.call(arguments, 2);
    var all = Object.assign({}, props);
    if (children.length) all.children = children.length === 1 ? children[0] : children;
    return { type: type, props: all };
  }
};

function expand(node) {
  if (node === null || node === undefined || typeof node !== 'object') return node;
  if (Array.isArray(node)) return node.map(expand);
  var type = node.type;
  if (typeof type === 'string') {
    var attrs = {};
    Object.keys(node.props).forEach(function (key) {
      var value = node.props[key];
      if (key !== 'children' && typeof value !== 'function' && typeof value !== 'object') attrs[key] = value;
    });
    var kids = node.props.children;
    return { tag: type, props: attrs, children: kids === undefined ? [] : [].concat(kids).map(expand) };
  }
  if (type.prototype && type.prototype.render) return expand(new type(node.props).render());
  return expand(type(node.props));
}

globalThis.ReactDOM = {
  createRoot: function () { return { render: function (tree) { rendered = expand(tree); } }; }
};
// Modules under test are plain JS, so compilation is the identity
globalThis.Babel = { transform: function (code) { return { code: code }; } };
"""


VISUAL_EDIT_SHIM = r"""
var posted = [];
var results = {};
var listeners = {};
var messageListeners = [];

globalThis.window = globalThis;
window.parent = { postMessage: function (message) { posted.push(message); } };
window.addEventListener = function (type, fn) { if (type === 'message') messageListeners.push(fn); };
globalThis.document = {
  body: { nodeType: 1, tagName: 'BODY', id: '', style: {} },
  documentElement: { nodeType: 1, tagName: 'HTML', id: '', style: {} },
  addEventListener: function (type, fn) { (listeners[type] = listeners[type] || []).push(fn); },
  removeEventListener: function (type, fn) {
    listeners[type] = (listeners[type] || []).filter(function (other) { return other !== fn; });
  }
};

function el(tag, id, cls, text, outline) {
  return {
    nodeType: 1, tagName: tag, id: id || '', textContent: text || '', style: { outline: outline || '' },
    getAttribute: function (name) { return name === 'class' ? (cls || null) : null; },
    closest: function () { return null; }
  };
}

function dispatch(type, target) {
  var prevented = false;
  var event = { target: target, preventDefault: function () { prevented = true; }, stopPropagation: function () {} };
  (listeners[type] || []).forEach(function (fn) { fn(event); });
  return prevented;
}

function send(data) {
  messageListeners.forEach(function (fn) { fn({ data: data }); });
}

function toggle(enabled) {
  send({ type: 'VISUAL_EDITING_TOGGLE', enabled: enabled });
}
"""


def run_node(tmp_path, source: str) -> dict:
    """Run a script and parse the JSON object printed on its last line."""
    script = tmp_path / "harness.js"
    script.write_text(source, encoding="utf-8")
    completed = subprocess.run(["node", str(script)], capture_output=True, text=True, timeout=60)
    assert completed.returncode == 0, completed.stderr
    return json.loads(completed.stdout.strip().splitlines()[-1])


def render_project(tmp_path, files) -> dict:
    """Run the preview runtime on a project; returns {rendered, posted}."""
    bundle = json.dumps(compile_project(files).to_runtime())
    source = "\n".join([
        RUNTIME_SHIM,
        f"document.getElementById('__preview_bundle').textContent = {json.dumps(bundle)};",
        render_runtime_script(),
        "console.log(JSON.stringify({ rendered: rendered, posted: posted }));",
    ])
    return run_node(tmp_path, source)


def run_visual_edit(tmp_path, steps: str) -> dict:
    """Load the visual-edit script, run `steps` against it; returns {posted, results}."""
    source = "\n".join([
        VISUAL_EDIT_SHIM,
        render_visual_edit_script(),
        steps,
        "console.log(JSON.stringify({ posted: posted, results: results }));",
    ])
    return run_node(tmp_path, source)


def check_syntax(tmp_path, source: str) -> subprocess.CompletedProcess:
    """`node --check` on an ES module."""
    module = tmp_path / "module.mjs"
    module.write_text(source, encoding="utf-8")
    return subprocess.run(["node", "--check", str(module)], capture_output=True, text=True, timeout=60)
