INDEX_HTML = r"""<!doctype html>
<html lang="en" data-bs-theme="dark">
<head>
  <meta charset="utf-8">
  <title>{{ app_title }}</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css" rel="stylesheet">
  <style>
    .card { border: 1px solid rgba(255,255,255,.08); }
    .game-cover { width: 100%; height: 200px; object-fit: cover; border-radius: .5rem .5rem 0 0; background:#222; }
    .title { white-space: nowrap; overflow: hidden; text-overflow: ellipsis; }
    .meta { color: rgba(255,255,255,.6); }
  </style>
</head>
<body>
<nav class="navbar navbar-expand-lg bg-body-tertiary px-3">
  <a class="navbar-brand" href="{{ url_for('arcadebox.index') }}">{{ app_title }}</a>
  <div class="ms-auto d-flex gap-2">
    <a class="btn btn-outline-light btn-sm" href="{{ url_for('arcadebox.upload') }}">Upload</a>
  </div>
</nav>

<div class="container py-4">
  {% with messages = get_flashed_messages() %}
    {% if messages %}
      <div class="alert alert-warning">{{ messages|join('. ') }}</div>
    {% endif %}
  {% endwith %}

  {% if not games %}
    <div class="text-center py-5">
      <h4>No games yet.</h4>
      <p class="text-secondary">Upload a ZIP with an <code>index.html</code> at its root to get started.</p>
    </div>
  {% else %}
  <div class="row row-cols-1 row-cols-sm-2 row-cols-md-3 row-cols-xl-4 g-4">
    {% for g in games %}
      <div class="col">
        <div class="card h-100 shadow-sm">
          <img class="game-cover" src="{{ url_for('arcadebox.cover', slug=g.slug) }}" alt="cover">
          <div class="card-body d-flex flex-column">
            <div class="title fw-semibold" title="{{ g.title }}">
              {{ g.title }}
              {% if g.featured %}<span class="badge text-bg-warning ms-2">Featured</span>{% endif %}
            </div>
            {% if g.author %}<div class="small meta mt-1">By {{ g.author }}</div>{% endif %}
            <div class="small meta">{{ g.views }} views · {{ g.plays }} plays</div>
            <div class="mt-auto pt-2">
              <a class="btn btn-success btn-sm" href="{{ url_for('arcadebox.play', slug=g.slug) }}">Play</a>
            </div>
          </div>
        </div>
      </div>
    {% endfor %}
  </div>
  {% endif %}
</div>
</body>
</html>
"""
PLAY_HTML = r"""<!doctype html>
<html lang="en" data-bs-theme="dark">
<head>
  <meta charset="utf-8">
  <title>{{ game.title }} — {{ app_title }}</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css" rel="stylesheet">
  <style>
    .player { position: relative; background: #000; {% if embed %}width: 100vw; height: 100vh;{% else %}aspect-ratio: 16 / 9; border-radius: .5rem; overflow: hidden;{% endif %} }
    .player iframe { width: 100%; height: 100%; border: 0; }
    .overlay { position: absolute; inset: 0; display: flex; align-items: center; justify-content: center; background: rgba(0,0,0,.75); text-align: center; }
    {% if embed %}body { margin: 0; overflow: hidden; }{% endif %}
  </style>
</head>
<body>
{% if not embed %}
<nav class="navbar navbar-expand-lg bg-body-tertiary px-3">
  <a class="navbar-brand" href="{{ url_for('arcadebox.index') }}">{{ app_title }}</a>
</nav>
<div class="container py-4">
  {% with messages = get_flashed_messages() %}
    {% if messages %}
      <div class="alert alert-info">{{ messages|join('. ') }}</div>
    {% endif %}
  {% endwith %}
  <a class="small" href="{{ url_for('arcadebox.index') }}">&larr; Back to games</a>
  <div class="card p-3 my-3">
    <h3 class="mb-1">{{ game.title }}</h3>
    {% if game.description %}<p class="text-secondary mb-2">{{ game.description }}</p>{% endif %}
    <div class="small text-secondary">
      {% if game.author %}By {{ game.author }} · {% endif %}{{ game.views }} views · {{ game.plays }} plays
    </div>
    <div class="d-flex align-items-center gap-3 mt-2" id="rating">
      <div>
        {% for star in range(1, 6) %}
        <button type="button" class="btn btn-link p-0 fs-4 text-warning text-decoration-none" data-star="{{ star }}">{{ '★' if star <= game.rating else '☆' }}</button>
        {% endfor %}
      </div>
      <span class="small text-secondary" id="ratingSummary">
        {% if game.rating_count %}{{ '%.1f'|format(game.rating) }} / 5.0 ({{ game.rating_count }} {{ 'rating' if game.rating_count == 1 else 'ratings' }}){% else %}No ratings yet - be the first!{% endif %}
      </span>
    </div>
  </div>
{% endif %}

  <div class="player" id="player">
    <div class="overlay" id="loading">
      <div>
        <div class="spinner-border text-info mb-3" role="status"></div>
        <p>Loading {{ game.title }}...</p>
      </div>
    </div>
    <div class="overlay d-none" id="failure">
      <div class="text-danger">
        <p class="fs-5 mb-2" id="failHeadline">Failed to load game</p>
        <p class="small" id="failMessage"></p>
      </div>
    </div>
    <iframe id="frame" title="{{ game.title }}" sandbox="{{ sandbox_flags }}" allow="autoplay; fullscreen; gamepad"></iframe>
  </div>

{% if not embed %}
  <div class="card p-3 mt-3">
    <h5>How to play</h5>
    <p class="text-secondary mb-0">Click on the game above to start playing. Use your keyboard and mouse to control the game.</p>
  </div>
</div>
{% endif %}

<script>
(function () {
  const slug = {{ game.slug|tojson }};
  const openUrl = "{{ url_for('arcadebox.open_session') }}";
  const closeUrl = "{{ url_for('arcadebox.close_session', sid='__SID__') }}";
  const stateUrl = "{{ url_for('arcadebox.session_state', sid='__SID__') }}";
  const rateUrl = "{{ url_for('arcadebox.api_rate_game') }}";
  let session = null;

  function fail(headline, message) {
    document.getElementById('loading').classList.add('d-none');
    document.getElementById('failHeadline').textContent = headline || 'Failed to load game';
    document.getElementById('failMessage').textContent = message || '';
    document.getElementById('failure').classList.remove('d-none');
  }

  fetch(openUrl, {
    method: 'POST',
    headers: { 'Content-Type': 'application/json' },
    body: JSON.stringify({ slug: slug }),
  })
    .then(r => r.json().then(body => ({ ok: r.ok, body: body })))
    .then(({ ok, body }) => {
      if (!ok) throw new Error(body.error || 'Failed to load game');
      session = body.session;
      if (body.state !== 'ready') {
        fail(body.headline, body.error);
        return;
      }
      document.getElementById('frame').src = body.document_url;
      document.getElementById('loading').classList.add('d-none');
    })
    .catch(err => fail('Failed to load game', err.message));

  // keep the session marked as active while the page is open
  setInterval(() => {
    if (session) fetch(stateUrl.replace('__SID__', encodeURIComponent(session)));
  }, 30000);

  window.addEventListener('pagehide', () => {
    if (session) navigator.sendBeacon(closeUrl.replace('__SID__', encodeURIComponent(session)));
  });

  const stars = document.querySelectorAll('#rating [data-star]');
  stars.forEach(btn => btn.addEventListener('click', () => {
    stars.forEach(b => { b.disabled = true; });
    fetch(rateUrl, {
      method: 'POST',
      headers: { 'Content-Type': 'application/json' },
      body: JSON.stringify({ slug: slug, rating: Number(btn.dataset.star) }),
    })
      .then(r => {
        const summary = document.getElementById('ratingSummary');
        if (r.ok) {
          summary.textContent = 'Thanks for rating!';
          summary.className = 'small text-success';
        } else {
          stars.forEach(b => { b.disabled = false; });
        }
      })
      .catch(() => stars.forEach(b => { b.disabled = false; }));
  }));
})();
</script>
</body>
</html>
"""
UPLOAD_HTML = r"""<!doctype html>
<html lang="en" data-bs-theme="dark">
<head>
  <meta charset="utf-8">
  <title>Upload — {{ app_title }}</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css" rel="stylesheet">
</head>
<body>
<nav class="navbar navbar-expand-lg bg-body-tertiary px-3">
  <a class="navbar-brand" href="{{ url_for('arcadebox.index') }}">{{ app_title }}</a>
</nav>

<div class="container py-4">
  {% with messages = get_flashed_messages() %}
    {% if messages %}
      <div class="alert alert-warning">{{ messages|join('. ') }}</div>
    {% endif %}
  {% endwith %}

  <form class="card p-3" action="{{ url_for('arcadebox.upload_post') }}" method="post" enctype="multipart/form-data">
    <h5 class="mb-3">Upload a game</h5>
    <div class="mb-3">
      <label class="form-label">Title</label>
      <input class="form-control" type="text" name="title" required>
    </div>
    <div class="mb-3">
      <label class="form-label">Slug</label>
      <input class="form-control" type="text" name="slug" pattern="[a-z0-9-]+" placeholder="derived from the title">
      <div class="form-text">Lowercase letters, numbers and hyphens.</div>
    </div>
    <div class="mb-3">
      <label class="form-label">Author</label>
      <input class="form-control" type="text" name="author">
    </div>
    <div class="mb-3">
      <label class="form-label">Description</label>
      <textarea class="form-control" name="description" rows="3"></textarea>
    </div>
    <div class="mb-3">
      <label class="form-label">Game ZIP</label>
      <input class="form-control" type="file" name="bundle" accept=".zip" required>
      <div class="form-text">Must contain <code>index.html</code> at the root of the archive.</div>
    </div>
    <div class="mb-3">
      <label class="form-label">Cover image</label>
      <input class="form-control" type="file" name="cover" accept="{{ ALLOWED_IMG_EXT|join(',') }}">
    </div>
    <div class="d-flex gap-2">
      <button class="btn btn-primary" type="submit">Upload</button>
      <a class="btn btn-secondary" href="{{ url_for('arcadebox.index') }}">Cancel</a>
    </div>
  </form>
</div>
</body>
</html>
"""
