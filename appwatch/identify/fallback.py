"""Deterministic identification used when no backend answers.

Each rule matches a ``:PORT`` fragment anywhere in the URL, so overlapping
ports are possible (``:50070`` also contains ``:5000``).  Rules are
evaluated in declared order and the first match wins, so the order is
significant.  After the port rules the page title is used, then a generic
``Port N`` label.
"""

from __future__ import annotations

from typing import Callable

from appwatch.identify.base import Identification
from appwatch.urls import url_port

Predicate = Callable[[str, "str | None"], bool]


def _port(port: int) -> Predicate:
    fragment = f":{port}"

    def predicate(url: str, title: str | None) -> bool:
        return fragment in url
    return predicate


def _rule(port: int, name: str, category: str, description: str) -> tuple[Predicate, Identification]:
    return _port(port), Identification(name=name, category=category, description=description)


FALLBACK_RULES: list[tuple[Predicate, Identification]] = [
    _rule(3000, "React/Vue Dev Server", "Development", "Frontend dev server"),
    _rule(3001, "Next.js Dev Server", "Development", "Next.js development server"),
    _rule(5000, "Flask/Python App", "Development", "Python web application"),
    _rule(5432, "PostgreSQL Admin", "Database", "PostgreSQL database admin"),
    _rule(5433, "PostgreSQL", "Database", "PostgreSQL database"),
    _rule(6379, "Redis", "Database", "Redis cache server"),
    _rule(8080, "Tomcat/Java App", "Development", "Java web application"),
    _rule(8000, "Python Server", "Development", "Python development server"),
    _rule(9200, "Elasticsearch", "Database", "Elasticsearch search engine"),
    _rule(9300, "Elasticsearch Cluster", "Database", "Elasticsearch cluster node"),
    _rule(5601, "Kibana", "Monitoring", "Kibana visualization"),
    _rule(4040, "Jenkins", "CI/CD", "Jenkins CI/CD server"),
    _rule(9000, "SonarQube", "CI/CD", "SonarQube code quality"),
    _rule(9001, "Portainer", "Monitoring", "Docker management"),
    _rule(10000, "Webmin", "Monitoring", "System administration"),
    _rule(15672, "RabbitMQ Management", "API", "RabbitMQ message queue"),
    _rule(15674, "RabbitMQ", "API", "RabbitMQ message broker"),
    _rule(8123, "Prometheus", "Monitoring", "Prometheus metrics"),
    _rule(9090, "Prometheus", "Monitoring", "Prometheus monitoring"),
    _rule(3002, "Storybook", "Development", "UI component library"),
    _rule(4200, "Angular Dev Server", "Development", "Angular application"),
    _rule(8001, "API Server", "API", "Backend API"),
    _rule(8020, "Hadoop YARN", "Big Data", "Hadoop resource manager"),
    _rule(50070, "Hadoop HDFS", "Big Data", "Hadoop distributed file system"),
    _rule(8081, "Service", "Development", "Microservice"),
    _rule(8888, "Jupyter", "Development", "Jupyter notebook"),
    _rule(8889, "Data Service", "API", "Data service"),
    _rule(9009, "Angular", "Development", "Angular application"),
    _rule(9043, "WebSphere", "Development", "IBM WebSphere"),
    _rule(9443, "Admin Console", "Monitoring", "Administration console"),
    _rule(11434, "Ollama", "AI/ML", "Ollama LLM server"),
    _rule(11435, "Open WebUI", "AI/ML", "Open WebUI for Ollama"),
]


def fallback_identify(url: str, title: str | None = None) -> Identification:
    """Name *url* from the rule table, then *title*, then its port."""
    for predicate, result in FALLBACK_RULES:
        if predicate(url, title):
            return Identification(**result.to_dict())

    if title and title.strip():
        title = title.strip()
        return Identification(name=title[:50], category="Other", description=title[:100])

    port = url_port(url)
    return Identification(
        name=f"Port {port}",
        category="Unknown",
        description=f"Application on port {port}",
    )
