"""
Static assets injected into every bundled document.

The bundler wraps these in a single script block carrying the capture
sentinel. The script installs the reset stylesheet, traps runtime errors and
renders them visibly, and runs the surface half of the message protocol.
"""

from __future__ import annotations

import json

RESET_CSS = """
*, *::before, *::after { box-sizing: border-box; }
html, body { margin: 0; padding: 0; }
body { font-family: system-ui, -apple-system, 'Segoe UI', Roboto, sans-serif; line-height: 1.5; }
img, picture, video, canvas, svg { display: block; max-width: 100%; }
input, button, textarea, select { font: inherit; }
.intent-loading { opacity: 0.6; pointer-events: none; }
.intent-success { outline: 2px solid #10b981; outline-offset: 2px; }
#__preview-error { position: fixed; left: 0; right: 0; bottom: 0; z-index: 2147483647;
  background: #7f1d1d; color: #fff; font: 13px/1.4 ui-monospace, monospace; padding: 8px 12px; }
#__preview-overlay { position: fixed; inset: 0; z-index: 2147483646; display: flex;
  align-items: center; justify-content: center; background: rgba(15, 23, 42, 0.55); }
#__preview-overlay > div { background: #fff; color: #0f172a; border-radius: 12px; padding: 24px 28px;
  max-width: 420px; text-align: center; box-shadow: 0 20px 40px rgba(0, 0, 0, 0.25); }
""".strip()

# Label → intent table used when an element declares no intent
LABEL_INTENTS: dict[str, str] = {
    # auth
    "sign in": "auth.signin",
    "log in": "auth.signin",
    "login": "auth.signin",
    "sign up": "auth.signup",
    "register": "auth.signup",
    "create account": "auth.signup",
    "sign out": "auth.signout",
    "log out": "auth.signout",
    # trials & demos
    "start free trial": "trial.start",
    "start trial": "trial.start",
    "try it free": "trial.start",
    "watch demo": "demo.watch",
    "request demo": "demo.request",
    "book demo": "demo.request",
    "schedule demo": "demo.request",
    # waitlist
    "join waitlist": "join.waitlist",
    "get early access": "join.waitlist",
    "notify me": "join.waitlist",
    "apply for beta": "beta.apply",
    # newsletter
    "subscribe": "newsletter.subscribe",
    "subscribe now": "newsletter.subscribe",
    "get updates": "newsletter.subscribe",
    "stay updated": "newsletter.subscribe",
    # contact
    "contact us": "contact.submit",
    "get in touch": "contact.submit",
    "send message": "contact.submit",
    "reach out": "contact.submit",
    "contact sales": "sales.contact",
    "talk to sales": "sales.contact",
    # commerce
    "add to cart": "cart.add",
    "add to bag": "cart.add",
    "add to wishlist": "wishlist.add",
    "order online": "order.online",
    "order now": "order.online",
    # booking
    "book now": "booking.create",
    "reserve now": "booking.create",
    "reserve table": "booking.create",
    "book a table": "booking.create",
    "book appointment": "booking.create",
    "make reservation": "booking.create",
    "book a call": "calendar.book",
    "schedule call": "calendar.book",
    "book consultation": "consultation.book",
    "free consultation": "consultation.book",
    # quotes
    "get quote": "quote.request",
    "get a quote": "quote.request",
    "request quote": "quote.request",
    "free estimate": "quote.request",
    "get estimate": "quote.request",
}

_CAPTURE_SCRIPT = r"""
(function () {
  var win = window;
  var doc = document;

  function post(msg) {
    try { win.parent.postMessage(msg, '*'); } catch (e) { /* detached */ }
  }

  function newRequestId() {
    return Date.now().toString(36) + Math.random().toString(36).slice(2, 10);
  }

  // ---- reset stylesheet -------------------------------------------------
  if (!doc.getElementById('__preview-reset')) {
    var reset = doc.createElement('style');
    reset.id = '__preview-reset';
    reset.textContent = __RESET_CSS__;
    (doc.head || doc.documentElement).appendChild(reset);
  }

  // ---- window-level state (survives document rewrites) ------------------
  var state = win.__previewState;
  var firstRun = !state;
  if (firstRun) {
    state = win.__previewState = { editMode: false, pending: {}, selected: null, hovered: null };
  }

  var LABEL_INTENTS = __LABEL_INTENTS__;
  var CONFIRMABLE = ['booking', 'contact', 'newsletter', 'quote', 'lead', 'form'];
  var BOOKING_SELECTORS =
    'form[data-booking], form[id*="booking"], form[class*="booking"], ' +
    'form[id*="reservation"], form[class*="reservation"], ' +
    'form[id*="appointment"], form[class*="appointment"], ' +
    '[data-section="booking"], [id*="booking-form"], ' +
    '#booking, #reservation, #appointment, .booking-form, .reservation-form';

  // ---- error trap -------------------------------------------------------
  function showError(message, source, line) {
    var text = String(message || 'Script error');
    var box = document.getElementById('__preview-error');
    if (!box) {
      box = document.createElement('div');
      box.id = '__preview-error';
      (document.body || document.documentElement).appendChild(box);
    }
    box.textContent = 'Preview error: ' + text + (line ? ' (line ' + line + ')' : '');
    var msg = { type: 'PREVIEW_ERROR', message: text.slice(0, 4000) };
    if (source) msg.source = String(source);
    if (typeof line === 'number' && line > 0) msg.line = line;
    post(msg);
  }

  // ---- helpers ----------------------------------------------------------
  function labelOf(el) {
    return ((el.textContent || '') + '').replace(/\s+/g, ' ').trim();
  }

  function inferIntent(text) {
    if (!text) return null;
    var lower = text.toLowerCase().replace(/[^a-z0-9\s]/g, '').replace(/\s+/g, ' ').trim();
    if (!lower) return null;
    if (LABEL_INTENTS[lower]) return LABEL_INTENTS[lower];
    for (var key in LABEL_INTENTS) {
      if (lower.indexOf(key) === 0) return LABEL_INTENTS[key];
    }
    return null;
  }

  function contextOf(el) {
    return {
      tag: el.tagName.toLowerCase(),
      parentTag: el.parentElement ? el.parentElement.tagName.toLowerCase() : null,
      isInNav: !!el.closest('nav, header, [role="navigation"]'),
      isInFooter: !!el.closest('footer'),
      intent: el.getAttribute('data-ut-intent') || el.getAttribute('data-intent') || null,
      noIntent: el.hasAttribute('data-no-intent'),
      href: el.getAttribute('href')
    };
  }

  function collectPayload(el) {
    var payload = {};
    Array.prototype.forEach.call(el.attributes, function (attr) {
      var name = attr.name;
      if (name.indexOf('data-') !== 0 || name === 'data-intent' || name === 'data-ut-intent') return;
      var key = name.slice(5).replace(/-([a-z])/g, function (_, c) { return c.toUpperCase(); });
      try { payload[key] = JSON.parse(attr.value); } catch (e) { payload[key] = attr.value; }
    });
    var form = el.closest('form');
    if (form) {
      new FormData(form).forEach(function (v, k) { if (typeof v === 'string') payload[k] = v; });
    }
    return payload;
  }

  function cssPath(el) {
    if (el.id) return '#' + CSS.escape(el.id);
    var parts = [];
    while (el && el.nodeType === 1 && el !== document.documentElement) {
      var part = el.tagName.toLowerCase();
      var parent = el.parentElement;
      if (parent) {
        var same = Array.prototype.filter.call(parent.children, function (c) { return c.tagName === el.tagName; });
        if (same.length > 1) part += ':nth-of-type(' + (same.indexOf(el) + 1) + ')';
      }
      parts.unshift(part);
      if (el.tagName === 'BODY') break;
      el = parent;
    }
    return parts.join(' > ');
  }

  function xpathOf(el) {
    var parts = [];
    while (el && el.nodeType === 1) {
      var index = 1;
      var sib = el.previousElementSibling;
      while (sib) { if (sib.tagName === el.tagName) index++; sib = sib.previousElementSibling; }
      parts.unshift(el.tagName.toLowerCase() + '[' + index + ']');
      el = el.parentElement;
    }
    return '/' + parts.join('/');
  }

  function writeDocument(html) {
    document.open();
    document.write(html);
    document.close();
  }

  function closeOverlay() {
    var overlay = document.getElementById('__preview-overlay');
    if (overlay) overlay.remove();
  }

  function showOverlay(title, body) {
    closeOverlay();
    var overlay = document.createElement('div');
    overlay.id = '__preview-overlay';
    overlay.setAttribute('data-no-intent', '');
    var card = document.createElement('div');
    var h = document.createElement('h3');
    h.textContent = title;
    var p = document.createElement('p');
    p.textContent = body;
    var btn = document.createElement('button');
    btn.type = 'button';
    btn.textContent = 'Close';
    btn.setAttribute('data-no-intent', '');
    btn.addEventListener('click', closeOverlay);
    card.appendChild(h);
    card.appendChild(p);
    card.appendChild(btn);
    overlay.appendChild(card);
    overlay.addEventListener('click', function (e) { if (e.target === overlay) closeOverlay(); });
    document.body.appendChild(overlay);
  }

  function triggerIntent(intent, payload, el) {
    var requestId = newRequestId();
    state.pending[requestId] = { intent: intent, el: el };
    if (el) el.classList.add('intent-loading');
    post({ type: 'INTENT_TRIGGER', intent: intent, payload: payload, requestId: requestId });
  }

  function clearHighlight(el) {
    if (el && el !== state.selected) el.style.outline = '';
  }

  // ---- window message handling (registered once per window) -------------
  function onMessage(e) {
    var data = e.data;
    if (!data || typeof data.type !== 'string') return;

    if (data.type === 'INTENT_RESULT') {
      var pending = state.pending[data.requestId];
      if (!pending) return;
      delete state.pending[data.requestId];
      if (pending.el) {
        pending.el.classList.remove('intent-loading');
        if (data.success) pending.el.classList.add('intent-success');
      }
      var confirmable = CONFIRMABLE.some(function (k) { return pending.intent.indexOf(k) !== -1; });
      if (!data.success) {
        showOverlay('Something went wrong', data.error || data.message || 'Please try again.');
      } else if (confirmable) {
        showOverlay('Thank you!', data.message || 'Your request has been received.');
      }
      return;
    }

    if (data.type === 'INTENT_COMMAND') {
      var handled = false;
      if (data.command === 'booking.scroll') {
        var target = document.querySelector(BOOKING_SELECTORS);
        if (!target) {
          var forms = document.querySelectorAll('form');
          for (var i = 0; i < forms.length; i++) {
            var hasDate = forms[i].querySelector('input[type="date"], input[type="datetime-local"], select[name*="date"], select[name*="time"]');
            var hasName = forms[i].querySelector('input[name*="name"], input[name*="client"], input[name*="customer"]');
            if (hasDate && hasName) { target = forms[i]; break; }
          }
        }
        if (target) {
          target.scrollIntoView({ behavior: 'auto', block: 'center' });
          var first = target.querySelector('input:not([type="hidden"]), select, textarea');
          if (first) setTimeout(function () { first.focus(); }, 50);
          handled = true;
        }
      }
      post({ type: 'INTENT_COMMAND_RESULT', command: data.command, requestId: data.requestId, handled: handled });
      return;
    }

    if (data.type === 'DOCUMENT_WRITE') {
      writeDocument(data.html);
      return;
    }

    if (data.type === 'NAV_PAGE_READY') {
      var waiting = state.pending[data.requestId];
      if (!waiting) return;
      delete state.pending[data.requestId];
      writeDocument(data.pageContent);
      return;
    }

    if (data.type === 'NAV_PAGE_ERROR') {
      var failed = state.pending[data.requestId];
      if (!failed) return;
      delete state.pending[data.requestId];
      if (failed.el) failed.el.classList.remove('intent-loading');
      showOverlay('Page unavailable', data.error || 'The page could not be generated.');
      return;
    }

    if (data.type === 'EDIT_MODE') {
      state.editMode = !!data.enabled;
      if (!state.editMode) {
        clearHighlight(state.hovered);
        if (state.selected) state.selected.style.outline = '';
        state.hovered = state.selected = null;
      }
      return;
    }

    if (data.type === 'ELEMENT_UPDATE') {
      var el = null;
      try { el = document.querySelector(data.selector); } catch (err) { el = null; }
      if (!el || !data.patch) return;
      var patch = data.patch;
      if (patch.styles) {
        for (var prop in patch.styles) el.style.setProperty(prop, patch.styles[prop]);
      }
      if (typeof patch.text === 'string') el.textContent = patch.text;
      if (patch.attributes) {
        for (var name in patch.attributes) {
          if (name.toLowerCase().indexOf('on') === 0) continue;
          el.setAttribute(name, patch.attributes[name]);
        }
      }
    }
  }

  if (firstRun) {
    win.addEventListener('message', onMessage);
    win.addEventListener('error', function (e) { showError(e.message, e.filename, e.lineno); });
    win.addEventListener('unhandledrejection', function (e) {
      var reason = e.reason;
      showError(reason && reason.message ? reason.message : String(reason));
    });
  }

  // ---- document-level capture (re-registered after each rewrite) --------
  if (doc.__previewCaptureBound) return;
  doc.__previewCaptureBound = true;

  doc.addEventListener('mouseover', function (e) {
    if (!state.editMode) return;
    clearHighlight(state.hovered);
    state.hovered = e.target;
    if (e.target !== state.selected) e.target.style.outline = '2px dashed #3b82f6';
  }, true);

  doc.addEventListener('click', function (e) {
    if (state.editMode) {
      e.preventDefault();
      e.stopPropagation();
      if (state.selected) state.selected.style.outline = '';
      var picked = e.target;
      state.selected = picked;
      picked.style.outline = '2px solid #10b981';
      var attributes = {};
      Array.prototype.forEach.call(picked.attributes, function (a) {
        if (a.name !== 'style') attributes[a.name] = a.value;
      });
      post({
        type: 'ELEMENT_SELECT',
        element: {
          tag: picked.tagName.toLowerCase(),
          text: labelOf(picked).slice(0, 200),
          attributes: attributes,
          selector: cssPath(picked),
          xpath: xpathOf(picked)
        }
      });
      return;
    }

    var research = e.target.closest('[data-research]');
    if (research) {
      e.preventDefault();
      e.stopPropagation();
      var query = research.getAttribute('data-research') || labelOf(research);
      if (query) post({ type: 'RESEARCH_OPEN', payload: { query: query.slice(0, 1000) } });
      return;
    }

    var el = e.target.closest('a[href], button, [role="button"], [data-intent], [data-ut-intent]');
    if (!el || el.closest('#__preview-overlay')) return;

    var link = el.tagName === 'A' ? el : null;
    var ctx = contextOf(el);
    if (ctx.noIntent || ctx.intent === 'none' || ctx.intent === 'ignore') {
      if (link) e.preventDefault();
      return;
    }

    var label = labelOf(el) || el.getAttribute('aria-label') || '';
    var intent = ctx.intent || inferIntent(label) || inferIntent(el.getAttribute('aria-label'));
    if (intent) {
      e.preventDefault();
      e.stopPropagation();
      triggerIntent(intent, collectPayload(el), el);
      return;
    }

    if (!link) return;
    e.preventDefault();
    e.stopPropagation();

    var href = link.getAttribute('href') || '';
    var pagePath = link.getAttribute('data-ut-path');
    if (href.charAt(0) === '#') {
      var anchor = href.length > 1 ? document.getElementById(href.slice(1)) : null;
      if (anchor) { anchor.scrollIntoView({ behavior: 'smooth' }); return; }
    }
    if (pagePath || /^[\w\-\/]+\.html$/i.test(href)) {
      var requestId = newRequestId();
      state.pending[requestId] = { intent: 'nav.goto', el: link };
      link.classList.add('intent-loading');
      post({
        type: 'NAV_PAGE_GENERATE',
        pageName: pagePath || href,
        pageContext: { title: document.title || '' },
        navLabel: label,
        requestId: requestId
      });
      return;
    }
    post({ type: 'preview-nav', intent: 'nav.goto', path: href, label: label, context: ctx });
  }, true);

  doc.addEventListener('submit', function (e) {
    var form = e.target;
    e.preventDefault();
    var intent = form.getAttribute('data-ut-intent') || form.getAttribute('data-intent') || 'form.submit';
    if (intent === 'none' || intent === 'ignore') return;
    var submit = form.querySelector('button[type="submit"], input[type="submit"]');
    triggerIntent(intent, collectPayload(submit || form), submit);
  }, true);
})();
""".strip()


def capture_script() -> str:
    """Return the capture script with the reset stylesheet and label table inlined."""
    return _CAPTURE_SCRIPT.replace("__RESET_CSS__", json.dumps(RESET_CSS)).replace(
        "__LABEL_INTENTS__", json.dumps(LABEL_INTENTS, sort_keys=True)
    )
