"""
共通カーネル

Order Service と Product Service が共有する横断的関心事:
認可ゲート、エラー分類、ドメインイベント発行、ログ設定、共通スキーマ。
"""
