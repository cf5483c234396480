"""Page-side snippets evaluated through Playwright.

They only collect raw text and attributes or tag elements; every decision
about what to click or keep is made in Python.
"""

TAG_ATTRIBUTE = "data-harvester-id"
CLICKED_ATTRIBUTE = "data-harvester-clicked"

QUERY_ELEMENTS = """
({selectors, tagAttr, clickedAttr}) => {
  const isVisible = (el) => !!(el.offsetWidth || el.offsetHeight || el.getClientRects().length);
  document.querySelectorAll(`[${tagAttr}]`).forEach((el) => el.removeAttribute(tagAttr));
  const seen = new Set();
  const out = [];
  let counter = 0;
  for (const selector of selectors) {
    let nodes = [];
    try { nodes = document.querySelectorAll(selector); } catch (e) { continue; }
    for (const el of nodes) {
      if (seen.has(el) || !isVisible(el) || el.disabled) continue;
      seen.add(el);
      const id = String(counter++);
      el.setAttribute(tagAttr, id);
      out.push({
        id,
        text: (el.innerText || el.textContent || "").trim().slice(0, 200),
        ariaLabel: el.getAttribute("aria-label") || "",
        clicked: el.hasAttribute(clickedAttr),
      });
    }
  }
  return out;
}
"""

FIRST_TEXT = """
(selectors) => {
  for (const selector of selectors) {
    let el = null;
    try { el = document.querySelector(selector); } catch (e) { continue; }
    const text = el && (el.innerText || el.textContent || "").trim();
    if (text) return text;
  }
  return "";
}
"""

EXISTS = """
(selectors) => selectors.some((selector) => {
  try { return !!document.querySelector(selector); } catch (e) { return false; }
})
"""

SCROLL_INTO_VIEW = """
(selectors) => {
  for (const selector of selectors) {
    const el = document.querySelector(selector);
    if (el) { el.scrollIntoView({block: "center"}); return true; }
  }
  return false;
}
"""

SCROLL_COMMENTS = """
(selectors) => {
  for (const selector of selectors) {
    const el = document.querySelector(selector);
    if (el) { el.scrollTop = el.scrollHeight; el.scrollIntoView({block: "end"}); return true; }
  }
  return false;
}
"""

INSTALL_OBSERVER = """
(nodeSelector) => {
  if (window.__harvesterActivity) return;
  const state = {nodes: document.querySelectorAll(nodeSelector).length, lastChange: Date.now(), observer: null};
  state.observer = new MutationObserver((mutations) => {
    for (const mutation of mutations) {
      for (const node of mutation.addedNodes) {
        if (node.nodeType !== 1) continue;
        if (node.matches(nodeSelector) || node.querySelector(nodeSelector)) {
          state.nodes = document.querySelectorAll(nodeSelector).length;
          state.lastChange = Date.now();
          return;
        }
      }
    }
  });
  state.observer.observe(document.body, {childList: true, subtree: true});
  window.__harvesterActivity = state;
}
"""

READ_OBSERVER = """
() => {
  const state = window.__harvesterActivity;
  if (!state) return {nodes: 0, msSinceChange: 0};
  return {nodes: state.nodes, msSinceChange: Date.now() - state.lastChange};
}
"""

REMOVE_OBSERVER = """
() => {
  const state = window.__harvesterActivity;
  if (state && state.observer) state.observer.disconnect();
  delete window.__harvesterActivity;
}
"""

SNAPSHOT_CONTAINERS = """
({containerSelectors, nameSelectors, titleSelectors, profileSelector}) => {
  let containers = [];
  for (const selector of containerSelectors) {
    containers = Array.from(document.querySelectorAll(selector));
    if (containers.length) break;
  }
  const textOf = (el) => (el && (el.innerText || el.textContent) || "").trim();
  return containers.map((container) => {
    const pick = (selectors) => selectors
      .map((selector) => textOf(container.querySelector(selector)))
      .filter((text) => text);
    return {
      id: container.getAttribute("data-id") || "",
      text: textOf(container),
      mailtos: Array.from(container.querySelectorAll("a[href^='mailto:']")).map((a) => a.getAttribute("href")),
      names: pick(nameSelectors),
      titles: pick(titleSelectors),
      profileLinks: Array.from(container.querySelectorAll(profileSelector)).slice(0, 3).map((a) => ({
        href: a.href || "",
        text: textOf(a),
        ariaLabel: a.getAttribute("aria-label") || "",
      })),
      strong: textOf(container.querySelector("strong, b")),
    };
  });
}
"""
