"""HTML pages, device presets and QR rendering for the admin and viewer UI.

Pages are small enough to build inline; every interpolated value goes
through ``html.escape`` (or URL quoting for path segments).
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from urllib.parse import quote

import qrcode
from qrcode.image.svg import SvgPathImage

from .workspace import PlayableSummary


@dataclass(frozen=True)
class DevicePreset:
    name: str
    width: int
    height: int


DEVICE_PRESETS: dict[str, DevicePreset] = {
    "iphone-14": DevicePreset("iPhone 14", 390, 844),
    "iphone-se": DevicePreset("iPhone SE", 375, 667),
    "ipad": DevicePreset("iPad", 768, 1024),
    "ipad-mini": DevicePreset("iPad Mini", 744, 1133),
    "galaxy-s23": DevicePreset("Galaxy S23", 360, 780),
    "pixel-7": DevicePreset("Pixel 7", 412, 915),
}
DEFAULT_DEVICE = "iphone-14"

_MOBILE_UA_RE = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)

_STYLE = """
body { font-family: system-ui, sans-serif; margin: 0; background: #f4f5f7; color: #1f2933; }
.container { max-width: 960px; margin: 0 auto; padding: 24px; }
.playable-card { background: #fff; border-radius: 8px; padding: 16px; margin-bottom: 12px; }
.playable-header { display: flex; justify-content: space-between; align-items: center; }
.status-success { color: #067647; } .status-error { color: #b42318; }
.playable-link { font-family: monospace; margin: 8px 0; word-break: break-all; }
.viewer-content { display: flex; justify-content: center; padding: 24px; }
.device-frame { border: 12px solid #111; border-radius: 32px; overflow: hidden; }
.device-screen iframe, .fullscreen iframe { border: 0; width: 100%; height: 100%; }
.fullscreen { position: fixed; inset: 0; }
.qr-modal { display: none; position: fixed; inset: 0; background: rgba(0,0,0,.6); }
.qr-modal.open { display: flex; align-items: center; justify-content: center; }
.qr-content { background: #fff; padding: 24px; border-radius: 8px; text-align: center; }
"""


def is_mobile(user_agent: str | None) -> bool:
    return bool(_MOBILE_UA_RE.search(user_agent or ""))


def get_device(device: str | None) -> tuple[str, DevicePreset]:
    key = device if device in DEVICE_PRESETS else DEFAULT_DEVICE
    return key, DEVICE_PRESETS[key]


def playable_src(playable_id: str, entry_path: str) -> str:
    """Iframe source for a playable's entry file, one quoted segment at a time."""
    segments = [quote(s, safe="") for s in entry_path.split("/")]
    return f"/playable/{quote(playable_id, safe='')}/" + "/".join(segments)


def view_url(base_url: str, playable_id: str) -> str:
    return f"{base_url}/view/{quote(playable_id, safe='')}"


def _page(title: str, body: str, body_class: str = "") -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>{html.escape(title)}</title>
<style>{_STYLE}</style>
</head>
<body class="{html.escape(body_class)}">
{body}
</body>
</html>"""


def render_login(error: bool = False) -> str:
    message = '<p class="status-error">Wrong password</p>' if error else ""
    body = f"""<div class="container">
<h1>Playable Preview</h1>
{message}
<form method="post" action="/login">
<input type="password" name="password" placeholder="Password" autofocus required />
<button type="submit">Log in</button>
</form>
</div>"""
    return _page("Login", body)


def render_admin(playables: list[PlayableSummary], base_url: str) -> str:
    cards = []
    for p in playables:
        safe_id = html.escape(p.playable_id)
        safe_url = html.escape(view_url(base_url, p.playable_id))
        status_class, status = ("status-success", "Ready") if p.has_entry_html else ("status-error", "Error")
        cards.append(
            f"""<div class="playable-card" data-id="{safe_id}">
<div class="playable-header">
<h3 class="playable-name">{safe_id}</h3>
<span class="status-badge {status_class}">{status}</span>
</div>
<div class="playable-link"><a href="{safe_url}">{safe_url}</a></div>
<div class="playable-actions">
<button type="button" class="copy-link" data-url="{safe_url}">Copy Link</button>
<button type="button" class="delete-playable" data-id="{safe_id}">Delete</button>
</div>
</div>"""
        )
    listing = "\n".join(cards) or "<p>No playables uploaded yet.</p>"
    body = f"""<div class="container">
<h1>Playables</h1>
<p><a href="/logout">Log out</a></p>
<form method="post" action="/admin/upload" enctype="multipart/form-data">
<input type="file" name="playable" accept=".html,.zip" required />
<button type="submit">Upload</button>
</form>
<div class="playables">
{listing}
</div>
</div>
<script>
document.addEventListener('click', async (e) => {{
  const t = e.target;
  if (t.classList.contains('copy-link')) {{
    await navigator.clipboard.writeText(t.dataset.url);
  }} else if (t.classList.contains('delete-playable') && confirm('Delete this playable?')) {{
    const res = await fetch('/admin/delete/' + encodeURIComponent(t.dataset.id), {{ method: 'DELETE' }});
    if (res.ok) location.reload();
  }}
}});
</script>"""
    return _page("Admin", body)


def render_mobile_viewer(playable_id: str, entry_path: str) -> str:
    src = html.escape(playable_src(playable_id, entry_path))
    body = f'<div class="fullscreen"><iframe id="playableFrame" src="{src}"></iframe></div>'
    return _page(f"Playable: {playable_id}", body, body_class="mobile")


def render_desktop_viewer(playable_id: str, entry_path: str, device: str | None, base_url: str) -> str:
    selected, preset = get_device(device)
    options = "".join(
        f'<option value="{html.escape(key)}"{" selected" if key == selected else ""}>'
        f"{html.escape(p.name)} ({p.width}×{p.height})</option>"
        for key, p in DEVICE_PRESETS.items()
    )
    src = html.escape(playable_src(playable_id, entry_path))
    qr_src = html.escape(f"/api/qr?url={quote(view_url(base_url, playable_id), safe='')}")
    body = f"""<div class="viewer-container">
<div class="viewer-controls">
<label>Device:
<select id="deviceSelect" onchange="location.search = '?device=' + this.value">{options}</select>
</label>
<button type="button" onclick="document.getElementById('playableFrame').src += ''">Reload</button>
<button type="button" onclick="document.getElementById('qrModal').classList.add('open')">QR Code</button>
</div>
<div class="viewer-content">
<div>
<div class="device-info">{html.escape(preset.name)} - {preset.width} × {preset.height}</div>
<div class="device-frame">
<div class="device-screen" style="width: {preset.width}px; height: {preset.height}px;">
<iframe id="playableFrame" src="{src}"></iframe>
</div>
</div>
</div>
</div>
<div id="qrModal" class="qr-modal" onclick="this.classList.remove('open')">
<div class="qr-content" onclick="event.stopPropagation()">
<h2>Scan QR Code</h2>
<img src="{qr_src}" width="256" height="256" alt="QR code" />
<p>Scan with your mobile device to open playable in fullscreen</p>
</div>
</div>
</div>"""
    return _page(f"Playable Preview: {playable_id}", body)


def render_qr_svg(url: str) -> bytes:
    qr = qrcode.QRCode(border=2, image_factory=SvgPathImage)
    qr.add_data(url)
    qr.make(fit=True)
    return qr.make_image().to_string(encoding="UTF-8")
