from collections import Counter
import json
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from settings import settings
from store import read_json

DATA = sys.argv[1] if len(sys.argv) > 1 else str(settings.data_dir)

days_dir = os.path.join(DATA, 'days')
interactions_dir = os.path.join(DATA, 'interactions')

print('Data root:', DATA)

day_files = sorted(f for f in os.listdir(days_dir) if f.endswith('.json') and f != 'index.json') \
    if os.path.isdir(days_dir) else []
photo_count = 0
kind_counts = Counter()
for f in day_files:
    day = read_json(os.path.join(days_dir, f), {})
    for p in day.get('photos') or []:
        photo_count += 1
        kind_counts[p.get('kind') or 'photo'] += 1

print('\nDays:')
print('  day files:', len(day_files))
print('  photos:   ', photo_count)
for k, c in kind_counts.most_common():
    print(f'  {c:8d}  {k}')
if day_files:
    print('  earliest:', day_files[0][:-5])
    print('  latest:  ', day_files[-1][:-5])

reaction_counts = Counter()
comment_total = 0
photo_records = 0
stack_records = 0
files = os.listdir(interactions_dir) if os.path.isdir(interactions_dir) else []
for f in files:
    if not f.endswith('.json'):
        continue
    if f.startswith('stack_'):
        stack_records += 1
    else:
        photo_records += 1
    rec = read_json(os.path.join(interactions_dir, f), {})
    for emoji, n in (rec.get('reactions') or {}).items():
        reaction_counts[emoji] += n
    comment_total += len(rec.get('comments') or [])

print('\nInteractions:')
print('  photo records:', photo_records)
print('  stack records:', stack_records)
print('  comments:     ', comment_total)
print('\nTop 10 reactions:')
for e, c in reaction_counts.most_common(10):
    print(f'  {c:8d}  {e}')

if '--json' in sys.argv:
    print(json.dumps({'days': len(day_files), 'photos': photo_count,
                      'comments': comment_total, 'reactions': dict(reaction_counts)},
                     ensure_ascii=False, indent=2))
